"""In-memory vector index scoped to a single analysis job."""
import logging
from typing import Any, Dict, List, Optional

import numpy as np

from models.chunk import Chunk, ScoredChunk
from services.similarity import Vector, cosine_similarities, normalize_dimensions

logger = logging.getLogger(__name__)


class VectorIndex:
    """
    Linear-scan nearest-neighbour store over chunk embeddings.

    Sized for the tens to low thousands of chunks one document produces; it
    is rebuilt for every job and never persisted. Create one instance per
    job; sharing an instance lets concurrent jobs read each other's chunks.
    """

    def __init__(self, dimension: Optional[int] = None):
        """
        Initialize an empty index.

        Args:
            dimension: Fixed vector dimension; taken from the first add() if omitted
        """
        self.dimension = dimension
        self._chunks: List[Chunk] = []
        self._metadata: List[Dict[str, Any]] = []
        self._vectors: List[np.ndarray] = []
        self._matrix: Optional[np.ndarray] = None

    def add(
        self,
        doc_id: str,
        content: str,
        embedding: Vector,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append one document; its embedding is fitted to the index dimension."""
        chunk = Chunk(chunk_id=doc_id, text=content, embedding=np.asarray(embedding))
        if metadata:
            chunk.category = metadata.get("category")
            chunk.confidence = metadata.get("confidence")
        self._append(chunk, dict(metadata or {}))

    def add_chunks(self, chunks: List[Chunk]) -> None:
        """
        Add embedded chunks to the index.

        Raises:
            ValueError: If a chunk has no embedding
        """
        for chunk in chunks:
            if chunk.embedding is None:
                raise ValueError(f"Chunk {chunk.chunk_id} has no embedding")
            self._append(chunk, {"category": chunk.category, "confidence": chunk.confidence})

        logger.debug(f"Index holds {len(self._chunks)} chunks")

    def search(self, query_embedding: Vector, top_k: int = 3) -> List[ScoredChunk]:
        """
        Find the chunks most similar to the query by cosine similarity.

        Results are ordered by descending similarity; equal similarities keep
        insertion order, so the earlier chunk wins a tie.

        Args:
            query_embedding: Query vector (fitted to the index dimension)
            top_k: Maximum number of results

        Returns:
            Up to ``top_k`` ScoredChunk objects

        Raises:
            ValueError: If query_embedding is empty or top_k is not positive
        """
        if query_embedding is None or len(query_embedding) == 0:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        if not self._chunks:
            return []

        query = normalize_dimensions(query_embedding, self.dimension)
        similarities = cosine_similarities(query, self._get_matrix())

        # Stable sort on the negated scores preserves insertion order for ties
        order = np.argsort(-similarities, kind="stable")[:top_k]
        return [
            ScoredChunk(chunk=self._chunks[i], relevance_score=float(similarities[i]))
            for i in order
        ]

    def metadata(self, doc_id: str) -> Dict[str, Any]:
        for chunk, metadata in zip(self._chunks, self._metadata):
            if chunk.chunk_id == doc_id:
                return metadata
        raise KeyError(doc_id)

    def clear(self) -> None:
        """Remove every stored document."""
        self._chunks = []
        self._metadata = []
        self._vectors = []
        self._matrix = None

    def count(self) -> int:
        return len(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    def _append(self, chunk: Chunk, metadata: Dict[str, Any]) -> None:
        if self.dimension is None:
            self.dimension = len(np.asarray(chunk.embedding).ravel())

        chunk.embedding = normalize_dimensions(chunk.embedding, self.dimension)
        self._chunks.append(chunk)
        self._metadata.append(metadata)
        self._vectors.append(chunk.embedding)
        self._matrix = None

    def _get_matrix(self) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.vstack(self._vectors)
        return self._matrix

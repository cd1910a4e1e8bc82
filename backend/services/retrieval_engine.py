"""Retrieval engine for orchestrating query embedding and chunk retrieval."""
import logging
from typing import List

from models.chunk import ScoredChunk
from config import RETRIEVAL_TOP_K
from services.vector_store import VectorIndex
from services.embedding_classifier import EmbeddingClassifier

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Embed an aspect or criterion query and fetch the closest chunks of one job."""

    def __init__(self, vector_index: VectorIndex, classifier: EmbeddingClassifier):
        """
        Initialize the retrieval engine.

        Args:
            vector_index: The job's VectorIndex
            classifier: The job's EmbeddingClassifier, used to embed queries
        """
        self.vector_index = vector_index
        self.classifier = classifier

    def retrieve(self, query: str, top_k: int = RETRIEVAL_TOP_K) -> List[ScoredChunk]:
        """
        Retrieve the top ``top_k`` chunks for a query.

        A query whose embedding failed comes back as a zero vector, which
        scores 0.0 against everything; the earliest chunks are returned in
        that case so the prompt still carries document text.

        Args:
            query: Retrieval query text
            top_k: Maximum number of chunks to retrieve

        Returns:
            List of scored chunks, empty if the query is blank or the index is empty
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        logger.debug(f"Embedding query: {query[:100]}...")
        query_embedding = self.classifier.embed_text(query)

        scored_chunks = self.vector_index.search(query_embedding, top_k=top_k)

        if scored_chunks:
            logger.debug(
                f"Retrieved {len(scored_chunks)} chunks "
                f"(top score: {scored_chunks[0].relevance_score:.3f})"
            )
        else:
            logger.info("No chunks found for query")

        return scored_chunks

    @staticmethod
    def format_context(scored_chunks: List[ScoredChunk]) -> str:
        """Join retrieved chunk text for inclusion in a prompt."""
        return "\n\n".join(scored.chunk.text for scored in scored_chunks)

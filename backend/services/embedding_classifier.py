"""Embedding-based category assignment for chunks and extracted items."""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from models.chunk import Chunk
from config import EMBEDDING_BATCH_SIZE, CLASSIFICATION_THRESHOLD
from services.embedding_model import EmbeddingProvider
from services.errors import TerminalProviderError
from services.retry import CancellationToken, RetryPolicy
from services.similarity import cosine_similarities, normalize_dimensions, zero_vector

logger = logging.getLogger(__name__)


class EmbeddingClassifier:
    """
    Embeds texts and assigns each one the most similar category label.

    Label embeddings are cached on the instance, so one classifier belongs
    to one job. Any single embedding failure degrades to a zero vector
    instead of failing the batch.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimension: Optional[int] = None,
        threshold: float = CLASSIFICATION_THRESHOLD,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        job_id: Optional[str] = None
    ):
        """
        Initialize the classifier.

        Args:
            provider: Embedding backend
            dimension: Fixed vector dimension for the job (defaults to provider.dimensions)
            threshold: Minimum similarity for a category to be assigned
            batch_size: Texts sent per embed_batch call
            retry_policy: Backoff policy for transient provider failures
            cancel_token: Job cancellation token
            job_id: Job identifier used in logs and errors
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.provider = provider
        self.dimension = dimension or provider.dimensions
        self.threshold = threshold
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.cancel_token = cancel_token
        self.job_id = job_id
        self._category_embeddings: Dict[str, np.ndarray] = {}

    def embed_text(self, text: str) -> np.ndarray:
        return self.embed_texts([text])[0]

    def embed_texts(self, texts: Sequence[str]) -> List[np.ndarray]:
        """
        Embed texts in batches of ``batch_size``.

        Blank texts and texts whose embedding terminally fails get a zero
        vector. Every returned vector has exactly ``self.dimension`` entries.
        """
        results: List[np.ndarray] = [zero_vector(self.dimension) for _ in texts]
        pending = [idx for idx, text in enumerate(texts) if text and text.strip()]

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            for idx, vector in zip(batch, self._embed_batch([texts[i] for i in batch])):
                results[idx] = vector

        return results

    def category_embeddings(self, categories: Sequence[str]) -> Dict[str, np.ndarray]:
        """Embed any labels not yet cached and return the vectors for ``categories``."""
        missing = [c for c in dict.fromkeys(categories) if c not in self._category_embeddings]
        if missing:
            logger.debug(f"Embedding {len(missing)} category labels", extra={"job_id": self.job_id})
            for category, vector in zip(missing, self.embed_texts(missing)):
                self._category_embeddings[category] = vector
        return {c: self._category_embeddings[c] for c in categories}

    def classify_chunks(self, chunks: List[Chunk], categories: Sequence[str]) -> List[Chunk]:
        """
        Attach an embedding, best category and confidence to each chunk.

        Chunks whose best similarity falls below the threshold keep their
        embedding but are left uncategorized.

        Args:
            chunks: Chunks to enrich in place
            categories: Candidate labels

        Returns:
            The same chunks, enriched
        """
        if not chunks:
            return chunks

        embeddings = self.embed_texts([chunk.text for chunk in chunks])
        for chunk, embedding in zip(chunks, embeddings):
            chunk.embedding = embedding
            chunk.category, chunk.confidence = self.best_category(embedding, categories)

        categorized = sum(1 for chunk in chunks if chunk.category)
        logger.info(
            f"Classified {len(chunks)} chunks ({categorized} categorized, "
            f"{len(chunks) - categorized} uncategorized)",
            extra={"job_id": self.job_id}
        )
        return chunks

    def best_category(self, embedding: np.ndarray, categories: Sequence[str]):
        """Return ``(category or None, confidence)`` for one embedding."""
        if not categories:
            return None, None

        label_vectors = self.category_embeddings(categories)
        labels = list(label_vectors)
        similarities = cosine_similarities(embedding, np.vstack([label_vectors[l] for l in labels]))

        # argmax keeps the first label on ties
        best = int(np.argmax(similarities))
        confidence = float(max(0.0, similarities[best]))
        if confidence < self.threshold:
            return None, confidence
        return labels[best], confidence

    def group_by_category(
        self,
        items: List[Any],
        categories: Sequence[str],
        text_of: Callable[[Any], str] = str
    ) -> Dict[str, Any]:
        """
        Group items under their best-matching category.

        Returns:
            {"categories": {label: [items]}, "uncategorized": [items]}
        """
        grouped: Dict[str, Any] = {"categories": {}, "uncategorized": []}
        if not items:
            return grouped

        embeddings = self.embed_texts([text_of(item) for item in items])
        for item, embedding in zip(items, embeddings):
            category, _ = self.best_category(embedding, categories)
            if category is None:
                grouped["uncategorized"].append(item)
            else:
                grouped["categories"].setdefault(category, []).append(item)
        return grouped

    def _embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """One batch call, falling back to per-item calls if the batch fails."""
        try:
            vectors = self.retry_policy.call(
                lambda: self.provider.embed_batch(texts),
                description=f"Embedding batch of {len(texts)}",
                cancel_token=self.cancel_token,
                context={"job_id": self.job_id}
            )
            return [normalize_dimensions(v, self.dimension) for v in vectors]
        except (TerminalProviderError, ValueError) as e:
            if len(texts) == 1:
                return [self._recover(texts[0], e)]
            logger.warning(
                f"Batch embedding failed, falling back to single requests: {e}",
                extra={"job_id": self.job_id}
            )

        return [self._embed_single(text) for text in texts]

    def _embed_single(self, text: str) -> np.ndarray:
        try:
            vector = self.retry_policy.call(
                lambda: self.provider.embed(text),
                description="Embedding request",
                cancel_token=self.cancel_token,
                context={"job_id": self.job_id}
            )
            return normalize_dimensions(vector, self.dimension)
        except (TerminalProviderError, ValueError) as e:
            return self._recover(text, e)

    def _recover(self, text: str, error: Exception) -> np.ndarray:
        logger.warning(
            f"Embedding failed for text '{text[:50]}', using zero vector: {error}",
            extra={"job_id": self.job_id, "error_code": getattr(error, "code", None)}
        )
        return zero_vector(self.dimension)

"""Chunk data models."""
from dataclasses import dataclass
from typing import Optional
import numpy as np

@dataclass
class Chunk:
    """Represents a token-bounded document segment used for retrieval."""
    chunk_id: str  # Format: "chunk-{index}"
    text: str
    token_count: int = 0
    overlap_token_count: int = 0  # Tokens carried over from the previous chunk
    category: Optional[str] = None
    confidence: Optional[float] = None
    embedding: Optional[np.ndarray] = None

@dataclass
class ScoredChunk:
    """Chunk with relevance score from retrieval."""
    chunk: Chunk
    relevance_score: float  # cosine similarity, -1.0 to 1.0

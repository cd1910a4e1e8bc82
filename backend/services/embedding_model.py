"""Embedding providers for the Hugging Face Inference API."""
import re
import time
import logging
from typing import List, Optional, Protocol

import httpx
import numpy as np

from config import (
    HUGGINGFACE_API_KEY,
    HUGGINGFACE_API_BASE_URL,
    EMBEDDING_MODEL,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_MAX_INPUT_CHARS,
    EMBEDDING_TIMEOUT,
)
from services.errors import ConfigurationError, TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Capability every embedding backend offers to the engine."""

    @property
    def dimensions(self) -> int:
        ...

    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        ...


def raise_for_status(response: httpx.Response, model_name: str) -> None:
    """Map a Hugging Face Inference API status code onto the error taxonomy."""
    status = response.status_code
    if status == 200:
        return

    details = {"model": model_name, "status_code": status}

    if status == 503:
        # Free tier models "sleep" and report an estimated load time
        try:
            details["estimated_time"] = response.json().get("estimated_time")
        except (ValueError, AttributeError):
            pass
        raise TransientProviderError("Model is loading (503)", code="MODEL_LOADING", details=details)

    if status == 429:
        raise TransientProviderError("Rate limit exceeded", code="RATE_LIMIT_ERROR", details=details)

    if status in (401, 403):
        raise TerminalProviderError("Invalid API key", code="AUTHENTICATION_ERROR", details=details)

    if status >= 500:
        raise TransientProviderError(
            f"Server error {status}", code="SERVER_ERROR", details=details
        )

    raise TerminalProviderError(
        f"API request failed with status {status}: {response.text}",
        code="API_ERROR",
        details=details
    )


def read_json(response: httpx.Response, model_name: str):
    """Decode a successful response body, treating non-JSON bodies as API errors."""
    try:
        return response.json()
    except ValueError as e:
        raise TerminalProviderError(
            "Response body is not valid JSON",
            code="API_ERROR",
            details={"model": model_name, "original_error": str(e)}
        ) from e


class HuggingFaceEmbeddingModel:
    """Feature-extraction client for a Hugging Face hosted embedding model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
        max_input_chars: int = EMBEDDING_MAX_INPUT_CHARS,
        timeout: float = EMBEDDING_TIMEOUT,
        api_base_url: str = HUGGINGFACE_API_BASE_URL
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key (defaults to HUGGINGFACE_API_KEY)
            model_name: Model identifier
            dimensions: Expected output dimension of the model
            max_input_chars: Inputs are whitespace-collapsed and clipped to this length
            timeout: Request timeout in seconds
            api_base_url: Inference API base URL

        Raises:
            ConfigurationError: If no API key is available
        """
        self.api_key = api_key or HUGGINGFACE_API_KEY
        if not self.api_key:
            raise ConfigurationError("HUGGINGFACE_API_KEY environment variable is required")

        self.model_name = model_name
        self._dimensions = dimensions
        self.max_input_chars = max_input_chars
        self.timeout = timeout
        self.api_url = f"{api_base_url.rstrip('/')}/{model_name}"

        logger.info(f"Initialized HuggingFaceEmbeddingModel with model: {model_name}")

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Raises:
            ValueError: If text is empty
            TransientProviderError: On timeouts, rate limits, model loading or 5xx
            TerminalProviderError: On authentication or other client errors
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._request([self._normalize_text(text)])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        Raises:
            ValueError: If texts list is empty or contains empty strings
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Texts in batch cannot be empty")

        return self._request([self._normalize_text(t) for t in texts])

    def _normalize_text(self, text: str) -> str:
        return re.sub(r"\s+", " ", text).strip()[:self.max_input_chars]

    def _request(self, texts: List[str]) -> List[List[float]]:
        """Single Inference API call; retrying is the caller's concern."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        start_time = time.time()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"Request timeout after {self.timeout}s",
                code="TIMEOUT_ERROR",
                details={"model": self.model_name, "original_error": str(e)}
            ) from e
        except httpx.RequestError as e:
            raise TransientProviderError(
                f"Network error: {str(e)}",
                code="NETWORK_ERROR",
                details={"model": self.model_name, "original_error": str(e)}
            ) from e

        raise_for_status(response, self.model_name)

        elapsed = time.time() - start_time
        logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

        output = read_json(response, self.model_name)
        if not isinstance(output, list):
            raise TerminalProviderError(
                f"Expected a list of embeddings, got {type(output).__name__}",
                code="API_ERROR",
                details={"model": self.model_name}
            )

        rows = self._as_rows(output, len(texts))
        if len(rows) != len(texts):
            raise TerminalProviderError(
                f"Expected {len(texts)} embeddings, got {len(rows)}",
                code="API_ERROR",
                details={"model": self.model_name}
            )

        try:
            return [self._as_vector(item) for item in rows]
        except (TypeError, ValueError) as e:
            raise TerminalProviderError(
                "Embedding output is not numeric",
                code="API_ERROR",
                details={"model": self.model_name, "original_error": str(e)}
            ) from e

    @staticmethod
    def _as_rows(output: list, expected: int) -> list:
        # A single input may come back unwrapped as a flat vector
        if expected == 1 and output and not isinstance(output[0], list):
            return [output]
        return list(output)

    @staticmethod
    def _as_vector(item) -> List[float]:
        """Collapse token-level output (tokens x dims) to one vector by mean pooling."""
        array = np.asarray(item, dtype=np.float64)
        if array.ndim == 0:
            return [float(array)]
        while array.ndim > 1:
            array = array.mean(axis=0)
        return array.tolist()

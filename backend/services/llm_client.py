"""Text generation providers: Groq chat completions and Hugging Face Inference."""
import time
import logging
from typing import Optional, Protocol

import httpx
from groq import Groq
from groq import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)

from config import (
    GROQ_API_KEY,
    GROQ_MODEL,
    HUGGINGFACE_API_KEY,
    HUGGINGFACE_API_BASE_URL,
    GENERATION_MODEL,
    LLM_TOP_P,
    LLM_TIMEOUT,
)
from services.embedding_model import raise_for_status, read_json
from services.errors import ConfigurationError, TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Single-shot completion capability."""

    def generate_text(self, formatted_prompt: str, max_output_tokens: int, temperature: float) -> str:
        ...


class GroqTextGenerator:
    """Client for interfacing with Groq API for text generation."""

    def __init__(self, api_key: Optional[str] = None, model: str = GROQ_MODEL):
        """
        Initialize Groq client.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model name

        Raises:
            ConfigurationError: If no API key is available
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ConfigurationError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.client = Groq(api_key=self.api_key)
        logger.info(f"GroqTextGenerator initialized with model: {model}")

    def generate_text(self, formatted_prompt: str, max_output_tokens: int, temperature: float) -> str:
        """
        Generate a completion for an already formatted prompt.

        Raises:
            TransientProviderError: Rate limits, timeouts, connection and 5xx errors
            TerminalProviderError: Authentication and other API errors
        """
        start_time = time.time()
        details = {"model": self.model}

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": formatted_prompt
                    }
                ],
                max_tokens=max_output_tokens,
                temperature=temperature
            )
        except RateLimitError as e:
            raise TransientProviderError(
                "Rate limit exceeded", code="RATE_LIMIT_ERROR",
                details={**details, "original_error": str(e)}
            ) from e
        except APITimeoutError as e:
            raise TransientProviderError(
                "Request timed out", code="TIMEOUT_ERROR",
                details={**details, "original_error": str(e)}
            ) from e
        except APIConnectionError as e:
            raise TransientProviderError(
                "Connection error", code="NETWORK_ERROR",
                details={**details, "original_error": str(e)}
            ) from e
        except InternalServerError as e:
            raise TransientProviderError(
                "Groq server error", code="SERVER_ERROR",
                details={**details, "original_error": str(e)}
            ) from e
        except (AuthenticationError, PermissionDeniedError) as e:
            raise TerminalProviderError(
                "Authentication failed. Please check your API key.",
                code="AUTHENTICATION_ERROR",
                details={**details, "original_error": str(e)}
            ) from e
        except APIStatusError as e:
            raise TerminalProviderError(
                f"Groq API error: {str(e)}", code="API_ERROR",
                details={**details, "status_code": e.status_code, "original_error": str(e)}
            ) from e
        except APIError as e:
            raise TerminalProviderError(
                f"Groq API error: {str(e)}", code="API_ERROR",
                details={**details, "original_error": str(e)}
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)
        text = response.choices[0].message.content or ""

        logger.info(
            f"Generated response: model={self.model}, "
            f"input_tokens={response.usage.prompt_tokens}, "
            f"output_tokens={response.usage.completion_tokens}, "
            f"latency={latency_ms}ms"
        )
        return text


class HuggingFaceTextGenerator:
    """Text-generation client for a Hugging Face hosted instruct model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = GENERATION_MODEL,
        top_p: float = LLM_TOP_P,
        timeout: float = LLM_TIMEOUT,
        api_base_url: str = HUGGINGFACE_API_BASE_URL
    ):
        """
        Initialize the text generation client.

        Raises:
            ConfigurationError: If no API key is available
        """
        self.api_key = api_key or HUGGINGFACE_API_KEY
        if not self.api_key:
            raise ConfigurationError("HUGGINGFACE_API_KEY environment variable is required")

        self.model_name = model_name
        self.top_p = top_p
        self.timeout = timeout
        self.api_url = f"{api_base_url.rstrip('/')}/{model_name}"

        logger.info(f"Initialized HuggingFaceTextGenerator with model: {model_name}")

    def generate_text(self, formatted_prompt: str, max_output_tokens: int, temperature: float) -> str:
        """
        Generate a completion for an already formatted prompt.

        Raises:
            TransientProviderError: Timeouts, network errors, 429, 503 and 5xx
            TerminalProviderError: Authentication and other client errors
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "inputs": formatted_prompt,
            "parameters": {
                "max_new_tokens": max_output_tokens,
                "temperature": temperature,
                "top_p": self.top_p,
                "return_full_text": False
            },
            "options": {
                "wait_for_model": True
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

        latency_ms = int((time.time() - start_time) * 1000)
        data = read_json(response, self.model_name)
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict) or not isinstance(data.get("generated_text"), str):
            raise TerminalProviderError(
                "Response has no generated_text",
                code="API_ERROR",
                details={"model": self.model_name}
            )
        text = data["generated_text"]

        logger.info(f"Generated response: model={self.model_name}, latency={latency_ms}ms")
        return text

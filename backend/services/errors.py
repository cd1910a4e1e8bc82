"""Error taxonomy shared by providers, the gateway and the orchestrators."""
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base error with a structured code, message and details payload."""

    code = "ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if code:
            self.code = code
        self.details: Dict[str, Any] = dict(details or {})
        super().__init__(message)

    @property
    def job_id(self) -> Optional[str]:
        return self.details.get("job_id")

    @property
    def key(self) -> Optional[str]:
        return self.details.get("key")

    @property
    def attempts(self) -> Optional[int]:
        return self.details.get("attempts")

    def with_context(self, **context: Any) -> "EngineError":
        """Attach job context without overwriting what is already known."""
        for name, value in context.items():
            if value is not None and self.details.get(name) is None:
                self.details[name] = value
        return self

    def __str__(self) -> str:
        context = ", ".join(
            f"{name}={self.details[name]}"
            for name in ("job_id", "key", "attempts")
            if self.details.get(name) is not None
        )
        return f"{self.message} ({context})" if context else self.message


class ConfigurationError(EngineError, ValueError):
    """Missing credentials or endpoint; fatal at construction."""
    code = "CONFIGURATION_ERROR"


class EmptyInputError(EngineError, ValueError):
    """Blank document rejected before any provider call."""
    code = "EMPTY_INPUT"


class ProviderError(EngineError):
    """Failure reported by an embedding or generation provider."""
    code = "PROVIDER_ERROR"


class TransientProviderError(ProviderError):
    """Timeout, rate limit or network failure; eligible for retry."""
    code = "TRANSIENT_PROVIDER_ERROR"


class TerminalProviderError(ProviderError):
    """Provider failure that will not succeed on retry, or retries exhausted."""
    code = "TERMINAL_PROVIDER_ERROR"


class MalformedResponseError(EngineError):
    """Model output that is not valid JSON even after repair."""
    code = "MALFORMED_RESPONSE"


class DimensionMismatchError(EngineError, ValueError):
    """Two vectors of different length were compared without normalization."""
    code = "DIMENSION_MISMATCH"


class JobCancelledError(EngineError):
    """The job was cancelled externally; pending retries were abandoned."""
    code = "JOB_CANCELLED"

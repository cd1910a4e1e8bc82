"""Exponential backoff and cooperative cancellation for provider calls."""
import time
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar

from config import MAX_RETRIES, INITIAL_RETRY_DELAY, MAX_RETRY_DELAY
from services.errors import JobCancelledError, TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signals a running job to stop issuing and retrying provider calls."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, **context: Any) -> None:
        if self._event.is_set():
            raise JobCancelledError("Job was cancelled", details=context)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)


class RetryPolicy:
    """Retry transient provider failures with exponential backoff.

    The delay before retry ``n`` (0-based) is ``initial_delay * 2 ** n``,
    capped at ``max_delay``. ``max_retries`` counts retries after the first
    attempt, so a call is tried at most ``max_retries + 1`` times.
    """

    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        initial_delay: float = INITIAL_RETRY_DELAY,
        max_delay: float = MAX_RETRY_DELAY,
        sleep: Optional[Callable[[float], None]] = None
    ):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")

        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * (2 ** attempt), self.max_delay)

    def call(
        self,
        operation: Callable[[], T],
        description: str = "provider call",
        cancel_token: Optional[CancellationToken] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> T:
        """
        Run ``operation`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument callable performing one provider call
            description: Human-readable label used in logs and errors
            cancel_token: Optional token checked before each attempt and during backoff
            context: Job context (job_id, key) attached to raised errors

        Returns:
            The operation's result

        Raises:
            TerminalProviderError: If retries are exhausted or the failure is not transient
            JobCancelledError: If the token is cancelled before or between attempts
        """
        context = dict(context or {})
        last_error: Optional[TransientProviderError] = None

        for attempt in range(self.max_retries + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(attempts=attempt, **context)

            try:
                return operation()
            except TransientProviderError as e:
                last_error = e
                if attempt == self.max_retries:
                    break

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed on attempt {attempt + 1}/{self.max_retries + 1}: "
                    f"{e.message}. Retrying in {delay}s...",
                    extra={"job_id": context.get("job_id"), "key": context.get("key"),
                           "attempt": attempt + 1}
                )
                self._wait(delay, cancel_token, attempt + 1, context)
            except TerminalProviderError as e:
                raise e.with_context(attempts=attempt + 1, **context)

        attempts = self.max_retries + 1
        error = TerminalProviderError(
            f"{description} failed after {attempts} attempts. "
            f"Last error: {last_error.message if last_error else 'unknown'}",
            details={
                **context,
                "attempts": attempts,
                "last_error_code": last_error.code if last_error else None,
            }
        )
        logger.error(
            error.message,
            extra={"job_id": context.get("job_id"), "key": context.get("key"),
                   "error_code": error.code, "error_details": error.details}
        )
        raise error from last_error

    def _wait(
        self,
        delay: float,
        cancel_token: Optional[CancellationToken],
        attempts: int,
        context: Dict[str, Any]
    ) -> None:
        # An injected sleep wins; otherwise block on the token so cancel() wakes us
        if self._sleep is not None:
            self._sleep(delay)
            cancelled = cancel_token is not None and cancel_token.cancelled
        elif cancel_token is not None:
            cancelled = cancel_token.wait(delay)
        else:
            time.sleep(delay)
            cancelled = False

        if cancelled:
            raise JobCancelledError(
                "Job was cancelled during retry backoff",
                details={**context, "attempts": attempts}
            )

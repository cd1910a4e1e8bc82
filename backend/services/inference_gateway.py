"""Prompt formatting, budgeting, retrying and structured-output parsing for generation calls."""
import copy
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import LLM_MAX_INPUT_TOKENS, LLM_MAX_OUTPUT_TOKENS, LLM_TEMPERATURE
from services.errors import MalformedResponseError
from services.json_repair import parse_json_object
from services.llm_client import TextGenerator
from services.retry import CancellationToken, RetryPolicy
from services.tokenizers import Tokenizer, count_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

TEXT = "text"
JSON_OBJECT = "json_object"


@dataclass
class GenerationOptions:
    """Per-call generation settings."""
    temperature: float = LLM_TEMPERATURE
    max_tokens: int = LLM_MAX_OUTPUT_TOKENS
    response_format: str = TEXT
    # Returned instead of raising when JSON output cannot be recovered
    default: Optional[Dict[str, Any]] = None


@dataclass
class GatewayResponse:
    """Result of one gateway call."""
    text: str
    data: Optional[Dict[str, Any]] = None
    truncated: bool = False
    attempts: int = 1
    latency_ms: int = 0
    used_default: bool = False


class GenerativeInferenceGateway:
    """Single entry point for generation calls made by the orchestrators."""

    PROMPT_TEMPLATE = "<|system|>{system}\n<|user|>{prompt}\n<|assistant|>"

    def __init__(
        self,
        generator: TextGenerator,
        tokenizer: Tokenizer,
        retry_policy: Optional[RetryPolicy] = None,
        max_input_tokens: int = LLM_MAX_INPUT_TOKENS
    ):
        """
        Initialize the gateway.

        Args:
            generator: Provider adapter that performs the completion
            tokenizer: Token counter used for input budgeting
            retry_policy: Backoff policy for transient provider failures
            max_input_tokens: Context budget shared by the prompt and the requested output
        """
        self.generator = generator
        self.tokenizer = tokenizer
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_input_tokens = max_input_tokens

    def format_prompt(self, prompt: str, system_instruction: str) -> str:
        return self.PROMPT_TEMPLATE.format(system=system_instruction, prompt=prompt)

    def fit_prompt(self, prompt: str, system_instruction: str, max_output_tokens: int):
        """
        Format the prompt, cutting the user prompt's tail to fit the input budget.

        Returns:
            (formatted_prompt, truncated)
        """
        budget = self.max_input_tokens - max_output_tokens
        overhead = count_tokens(self.tokenizer, self.format_prompt("", system_instruction))
        room = budget - overhead

        if room <= 0:
            raise ValueError(
                f"max_tokens={max_output_tokens} leaves no room for the prompt "
                f"within max_input_tokens={self.max_input_tokens}"
            )

        truncated = False
        if count_tokens(self.tokenizer, prompt) > room:
            prompt = truncate_to_tokens(self.tokenizer, prompt, room)
            truncated = True

        return self.format_prompt(prompt, system_instruction), truncated

    def generate(
        self,
        prompt: str,
        system_instruction: str,
        options: Optional[GenerationOptions] = None,
        *,
        job_id: Optional[str] = None,
        key: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> GatewayResponse:
        """
        Run one generation call with truncation, retries and JSON recovery.

        Args:
            prompt: User prompt
            system_instruction: System instruction
            options: Generation settings; ``response_format="json_object"`` parses the output
            job_id: Job identifier attached to logs and errors
            key: Criterion or aspect key attached to logs and errors
            cancel_token: Job cancellation token

        Returns:
            GatewayResponse with raw text and, for JSON calls, the parsed object

        Raises:
            TerminalProviderError: If the provider fails terminally or retries run out
            MalformedResponseError: If JSON was requested, cannot be recovered and no default is set
            JobCancelledError: If the job is cancelled
        """
        options = options or GenerationOptions()
        context = {"job_id": job_id, "key": key}

        formatted, truncated = self.fit_prompt(prompt, system_instruction, options.max_tokens)
        if truncated:
            logger.warning(
                f"Prompt truncated to fit {self.max_input_tokens - options.max_tokens} input tokens",
                extra=context
            )

        attempts = 0

        def attempt() -> str:
            nonlocal attempts
            attempts += 1
            return self.generator.generate_text(formatted, options.max_tokens, options.temperature)

        start_time = time.time()
        text = self.retry_policy.call(
            attempt,
            description=f"Generation for {key or 'prompt'}",
            cancel_token=cancel_token,
            context=context
        )
        latency_ms = int((time.time() - start_time) * 1000)

        response = GatewayResponse(
            text=text,
            truncated=truncated,
            attempts=attempts,
            latency_ms=latency_ms
        )

        if options.response_format != JSON_OBJECT:
            return response

        try:
            response.data = parse_json_object(text)
        except MalformedResponseError as e:
            e.with_context(job_id=job_id, key=key, attempts=attempts)
            if options.default is None:
                logger.error(
                    f"Unrepairable JSON from model: {e.message}",
                    extra={**context, "error_code": e.code, "error_details": e.details}
                )
                raise
            logger.warning(
                f"Unrepairable JSON from model, using default structure: {e.message}",
                extra={**context, "error_code": e.code}
            )
            response.data = copy.deepcopy(options.default)
            response.used_default = True

        return response

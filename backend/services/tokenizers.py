"""Token counters used for chunking and prompt budgeting."""
import logging
from typing import List, Protocol

from config import TOKENIZER, TIKTOKEN_ENCODING, HF_TOKENIZER_MODEL

logger = logging.getLogger(__name__)


class Tokenizer(Protocol):
    """Anything that maps text to token ids and back."""

    def encode(self, text: str) -> List[int]:
        ...

    def decode(self, tokens: List[int]) -> str:
        ...


class TiktokenTokenizer:
    """Tokenizer backed by a tiktoken encoding."""

    def __init__(self, encoding_name: str = TIKTOKEN_ENCODING):
        import tiktoken

        self.encoding_name = encoding_name
        self._encoding = tiktoken.get_encoding(encoding_name)
        logger.info(f"Initialized tiktoken encoder ({encoding_name})")

    def encode(self, text: str) -> List[int]:
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: List[int]) -> str:
        return self._encoding.decode(list(tokens))


class HuggingFaceTokenizer:
    """Tokenizer matching a Hugging Face model's vocabulary."""

    def __init__(self, model_name: str = HF_TOKENIZER_MODEL):
        from transformers import AutoTokenizer

        self.model_name = model_name
        logger.info(f"Loading tokenizer for {model_name}...")
        self._tokenizer = AutoTokenizer.from_pretrained(model_name)

    def encode(self, text: str) -> List[int]:
        return self._tokenizer.encode(text, add_special_tokens=False)

    def decode(self, tokens: List[int]) -> str:
        return self._tokenizer.decode(list(tokens), skip_special_tokens=True)


def create_tokenizer(name: str = TOKENIZER) -> Tokenizer:
    """Build the tokenizer selected by configuration."""
    if name == "tiktoken":
        return TiktokenTokenizer()
    if name == "huggingface":
        return HuggingFaceTokenizer()
    raise ValueError(f"Unknown tokenizer: {name}")


def count_tokens(tokenizer: Tokenizer, text: str) -> int:
    return len(tokenizer.encode(text)) if text else 0


def truncate_to_tokens(tokenizer: Tokenizer, text: str, limit: int) -> str:
    """Keep the beginning of ``text`` so that it encodes to at most ``limit`` tokens."""
    if limit <= 0:
        return ""

    tokens = tokenizer.encode(text)
    if len(tokens) <= limit:
        return text

    # Decoding a prefix can re-encode slightly longer at a merge boundary
    keep = limit
    while keep > 0:
        candidate = tokenizer.decode(tokens[:keep])
        if len(tokenizer.encode(candidate)) <= limit:
            return candidate
        keep -= 1
    return ""


def tail_tokens(tokenizer: Tokenizer, text: str, limit: int) -> str:
    """Return the trailing ``limit`` tokens of ``text`` as text."""
    if limit <= 0 or not text:
        return ""

    tokens = tokenizer.encode(text)
    keep = min(limit, len(tokens))
    while keep > 0:
        candidate = tokenizer.decode(tokens[-keep:]).strip()
        if count_tokens(tokenizer, candidate) <= limit:
            return candidate
        keep -= 1
    return ""

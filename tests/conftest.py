"""Shared fakes for provider-free tests."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import re

import pytest

from services.errors import TerminalProviderError, TransientProviderError
from services.retry import RetryPolicy


class WhitespaceTokenizer:
    """One token per whitespace-separated word."""

    def __init__(self):
        self.vocab = {}
        self.words = []

    def encode(self, text):
        ids = []
        for word in text.split():
            if word not in self.vocab:
                self.vocab[word] = len(self.words)
                self.words.append(word)
            ids.append(self.vocab[word])
        return ids

    def decode(self, tokens):
        return " ".join(self.words[t] for t in tokens)


class SubwordTokenizer:
    """Byte-pair style pieces: words carry their leading space, digits do not."""

    PIECE = re.compile(r" ?[A-Za-z]+|[0-9]+| ?[^\sA-Za-z0-9]+|\s")

    def __init__(self):
        self.vocab = {}
        self.pieces = []

    def encode(self, text):
        ids = []
        for piece in self.PIECE.findall(text):
            if piece not in self.vocab:
                self.vocab[piece] = len(self.pieces)
                self.pieces.append(piece)
            ids.append(self.vocab[piece])
        return ids

    def decode(self, tokens):
        return "".join(self.pieces[t] for t in tokens)


class KeywordEmbedder:
    """Embeds text as keyword counts along fixed axes."""

    AXES = ["budget", "timeline", "team", "technical", "compliance", "risk", "title", "documentation"]

    def __init__(self, dimensions=8, fail_on=None):
        self._dimensions = dimensions
        self.fail_on = fail_on or set()
        self.calls = []

    @property
    def dimensions(self):
        return self._dimensions

    def _vector(self, text):
        lowered = text.lower()
        for marker in self.fail_on:
            if marker in lowered:
                raise TerminalProviderError(f"cannot embed '{marker}'")
        vector = [float(lowered.count(axis)) for axis in self.AXES]
        return (vector + [0.0] * self._dimensions)[:self._dimensions]

    def embed(self, text):
        self.calls.append(("embed", text))
        return self._vector(text)

    def embed_batch(self, texts):
        self.calls.append(("embed_batch", list(texts)))
        return [self._vector(t) for t in texts]


class ScriptedGenerator:
    """Returns responses chosen by the first matching marker in the prompt."""

    def __init__(self, responses=None, default='{}'):
        self.responses = responses or {}
        self.default = default
        self.prompts = []

    def generate_text(self, formatted_prompt, max_output_tokens, temperature):
        self.prompts.append(formatted_prompt)
        for marker, response in self.responses.items():
            if marker in formatted_prompt:
                if callable(response):
                    response = response()
                if isinstance(response, Exception):
                    raise response
                return response
        return self.default


@pytest.fixture
def tokenizer():
    return WhitespaceTokenizer()


@pytest.fixture
def subword_tokenizer():
    return SubwordTokenizer()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def make_generator():
    return ScriptedGenerator


@pytest.fixture
def make_embedder():
    return KeywordEmbedder


@pytest.fixture
def no_wait_retry():
    """Retry policy that records delays instead of sleeping."""
    delays = []
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, sleep=delays.append)
    policy.delays = delays
    return policy


@pytest.fixture
def transient():
    def build(message="Rate limit exceeded"):
        return TransientProviderError(message, code="RATE_LIMIT_ERROR")
    return build

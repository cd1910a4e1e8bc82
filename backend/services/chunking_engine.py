"""Token-bounded text segmentation with overlapping context."""
import logging
import re
from typing import List, Optional, Tuple

from models.chunk import Chunk
from config import CHUNK_SIZE, CHUNK_OVERLAP
from services.tokenizers import Tokenizer, count_tokens, tail_tokens

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


class TextSegmenter:
    """Segments raw document text into retrievable, overlapping chunks."""

    # Separator used when packing units into one chunk, by unit kind
    PARAGRAPH = "\n\n"
    SENTENCE = " "

    def __init__(
        self,
        tokenizer: Tokenizer,
        max_tokens: int = CHUNK_SIZE,
        overlap_tokens: int = CHUNK_OVERLAP
    ):
        """
        Initialize TextSegmenter.

        Args:
            tokenizer: Token counter used for every size decision
            max_tokens: Maximum chunk size in tokens, overlap prefix included
            overlap_tokens: Tokens of the previous chunk repeated at the start of the next

        Raises:
            ValueError: If the limits are not positive or overlap is not below max_tokens
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens cannot be negative")
        if overlap_tokens >= max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")

        self.tokenizer = tokenizer
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        # Room left for new content once the overlap prefix is in place
        self.body_tokens = max_tokens - overlap_tokens

    def segment(self, text: str) -> List[Chunk]:
        """
        Split text into chunks of at most ``max_tokens`` tokens.

        Paragraphs are kept whole where they fit; oversized paragraphs are split
        on sentence boundaries, and sentences that are still too long are
        hard-split on token boundaries. Each chunk after the first starts with
        up to ``overlap_tokens`` trailing tokens of the chunk before it. No
        document text is dropped.

        Args:
            text: Raw document text

        Returns:
            List of Chunk objects, empty for blank input
        """
        if not text or not text.strip():
            return []

        units = self._split_units(text)
        bodies = self._pack(units)

        chunks = []
        previous: Optional[str] = None
        for idx, body in enumerate(bodies):
            content, overlap = self._with_overlap(previous, body)

            chunks.append(Chunk(
                chunk_id=f"chunk-{idx}",
                text=content,
                token_count=count_tokens(self.tokenizer, content),
                overlap_token_count=count_tokens(self.tokenizer, overlap)
            ))
            previous = content

        logger.info(f"Created {len(chunks)} chunks from {len(text)} characters")
        return chunks

    def _with_overlap(self, previous: Optional[str], body: str) -> Tuple[str, str]:
        """
        Prefix body with the tail of the previous chunk.

        Subword tokenizers can merge or split tokens where the prefix meets the
        body, so the joined text is measured again and the prefix shrinks until
        the chunk fits. The body itself is never cut.
        """
        limit = self.overlap_tokens if previous else 0
        while limit > 0:
            overlap = tail_tokens(self.tokenizer, previous, limit)
            if not overlap:
                break
            content = f"{overlap} {body}"
            if count_tokens(self.tokenizer, content) <= self.max_tokens:
                return content, overlap
            limit -= 1
        return body, ""

    def _split_units(self, text: str) -> List[Tuple[str, str]]:
        """Break text into (unit, separator) pairs that each fit the body budget."""
        units = []
        for paragraph in PARAGRAPH_BREAK.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if count_tokens(self.tokenizer, paragraph) <= self.body_tokens:
                units.append((paragraph, self.PARAGRAPH))
                continue

            sentences = [s.strip() for s in SENTENCE_BREAK.split(paragraph) if s.strip()]
            for position, sentence in enumerate(sentences):
                # The first piece of a paragraph still starts on a paragraph break
                separator = self.PARAGRAPH if position == 0 else self.SENTENCE
                for piece_idx, piece in enumerate(self._hard_split(sentence)):
                    units.append((piece, separator if piece_idx == 0 else self.SENTENCE))

        return units

    def _hard_split(self, sentence: str) -> List[str]:
        """Cut a sentence into token windows of at most ``body_tokens`` tokens."""
        tokens = self.tokenizer.encode(sentence)
        if len(tokens) <= self.body_tokens:
            return [sentence]

        pieces = []
        start = 0
        while start < len(tokens):
            keep = min(self.body_tokens, len(tokens) - start)
            piece = self.tokenizer.decode(tokens[start:start + keep]).strip()
            # Decoded text can re-encode longer; give tokens back to the next window
            while keep > 1 and count_tokens(self.tokenizer, piece) > self.body_tokens:
                keep -= 1
                piece = self.tokenizer.decode(tokens[start:start + keep]).strip()
            if piece:
                pieces.append(piece)
            start += keep
        return pieces

    def _pack(self, units: List[Tuple[str, str]]) -> List[str]:
        """Greedily join consecutive units while they fit the body budget."""
        bodies = []
        current = ""

        for unit, separator in units:
            candidate = f"{current}{separator}{unit}" if current else unit
            if count_tokens(self.tokenizer, candidate) <= self.body_tokens:
                current = candidate
                continue

            if current:
                bodies.append(current)
            current = unit

        if current:
            bodies.append(current)

        return bodies

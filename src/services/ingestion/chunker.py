"""Token-window text chunking with overlap and a global chunk limit.

Splits the text units of one document (one unit per PDF page, one unit for
a plain-text file) into :class:`~src.models.rag.TextChunk` objects sized
for the embedding model.

The chunking strategy works on *token boundaries*, not raw characters:

1. **Tokenize** -- a pluggable tokenizer turns each unit into contiguous
   character spans that together cover the whole unit.  The default
   ``character`` tokenizer makes every character a token, ``word`` makes
   every whitespace-delimited word (with its trailing whitespace) a token,
   and ``huggingface:<model>`` uses the offsets of a HuggingFace
   ``tokenizers`` model.

2. **Slide a window** -- each window covers ``chunk_size`` tokens and the
   next window starts ``chunk_overlap`` tokens before the previous one
   ended, so a sentence that straddles a boundary appears whole in at
   least one chunk.  A window shorter than ``min_chunk_chars`` characters
   is widened token by token until it reaches that length or the end of
   the unit.

3. **Filter and cap** -- windows with fewer than
   ``min_chunk_length_to_embed`` tokens, or only whitespace, are dropped.
   At most ``max_chunks`` chunks are produced per document; what happens
   to the remaining text is decided by the :class:`OverflowPolicy`.

For a unit of ``n`` tokens and ``n > chunk_size`` the window count is
``ceil((n - overlap) / (chunk_size - overlap))``; a 3000-character text
with the defaults (1000 / 200, character tokens) yields four chunks.
Output is deterministic for identical input and configuration.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence

import structlog

from src.config.knowledge_base import OverflowPolicy, VectorizationConfig
from src.models.rag import TextChunk
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_WORD_PATTERN = re.compile(r"\S+\s*")


# ---------------------------------------------------------------------------
# Tokenizers
# ---------------------------------------------------------------------------

class Tokenizer(ABC):
    """Splits text into contiguous tokens.

    :meth:`boundaries` returns the character offset where each token
    starts, followed by ``len(text)``; token ``i`` spans
    ``text[bounds[i]:bounds[i + 1]]``.  Empty text has no tokens and
    returns ``[0]``.
    """

    name: str = "tokenizer"

    @abstractmethod
    def boundaries(self, text: str) -> list[int]:
        """Return token start offsets plus the end offset of the text."""

    def count(self, text: str) -> int:
        return len(self.boundaries(text)) - 1


class CharacterTokenizer(Tokenizer):
    """One token per character."""

    name = "character"

    def boundaries(self, text: str) -> list[int]:
        return list(range(len(text) + 1))

    def count(self, text: str) -> int:
        return len(text)


class WordTokenizer(Tokenizer):
    """One token per whitespace-delimited word, trailing whitespace attached.

    Leading whitespace belongs to the first word.
    """

    name = "word"

    def boundaries(self, text: str) -> list[int]:
        if not text:
            return [0]
        starts = [m.start() for m in _WORD_PATTERN.finditer(text)]
        if not starts:
            # Whitespace only: a single token.
            return [0, len(text)]
        starts[0] = 0
        return [*starts, len(text)]


class HuggingFaceTokenizer(Tokenizer):
    """Token boundaries from a HuggingFace ``tokenizers`` model.

    The model's offsets may skip whitespace between tokens; each gap is
    attached to the preceding token so the spans stay contiguous.
    """

    def __init__(self, tokenizer: object, model_id: str) -> None:
        self._tokenizer = tokenizer
        self.name = f"huggingface:{model_id}"

    def boundaries(self, text: str) -> list[int]:
        if not text:
            return [0]
        encoding = self._tokenizer.encode(text, add_special_tokens=False)  # type: ignore[attr-defined]
        starts: list[int] = []
        for start, end in encoding.offsets:
            if end <= start:
                continue
            if not starts or start > starts[-1]:
                starts.append(start)
        if not starts:
            return [0, len(text)]
        starts[0] = 0
        return [*starts, len(text)]


def build_tokenizer(config_name: str) -> Tokenizer:
    """Create a tokenizer from its config name.

    ``"character"``, ``"word"``, or ``"huggingface:<model id>"``.  A
    HuggingFace model that cannot be loaded falls back to the character
    tokenizer.

    Raises
    ------
    ConfigurationError
        If *config_name* names no known tokenizer.
    """
    name = config_name.strip()
    if name == "character":
        return CharacterTokenizer()
    if name == "word":
        return WordTokenizer()
    if name.startswith("huggingface:"):
        model_id = name.split(":", 1)[1].strip()
        if not model_id:
            raise ConfigurationError(message="huggingface tokenizer needs a model id")
        return _load_huggingface(model_id)
    raise ConfigurationError(message=f"Unknown tokenizer: {config_name!r}")


def _load_huggingface(model_id: str) -> Tokenizer:
    try:
        from tokenizers import Tokenizer as _HFTokenizer  # type: ignore[import-untyped]

        return HuggingFaceTokenizer(_HFTokenizer.from_pretrained(model_id), model_id)
    except Exception as exc:  # noqa: BLE001
        logger.info(
            "tokenizer_unavailable",
            model=model_id,
            error=str(exc),
            msg="Falling back to character tokens.",
        )
        return CharacterTokenizer()


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

class TextChunker:
    """Splits text units into overlapping token windows.

    Parameters
    ----------
    chunk_size:
        Tokens per window.
    chunk_overlap:
        Tokens shared by consecutive windows of the same unit.  Must be
        smaller than *chunk_size*.
    min_chunk_chars:
        Windows shorter than this many characters are widened until they
        reach it or the unit ends.
    min_chunk_length_to_embed:
        Windows with fewer tokens than this are dropped.
    max_chunks:
        Upper bound on chunks per document.
    overflow_policy:
        What to do with text left over once *max_chunks* is reached.
    tokenizer:
        Token boundary source; defaults to :class:`CharacterTokenizer`.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        min_chunk_chars: int = 350,
        min_chunk_length_to_embed: int = 5,
        max_chunks: int = 10_000,
        overflow_policy: OverflowPolicy = OverflowPolicy.TRUNCATE,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(message=f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ConfigurationError(
                message=f"chunk_overlap must not be negative, got {chunk_overlap}"
            )
        if chunk_overlap >= chunk_size:
            raise ConfigurationError(
                message=(
                    f"chunk_overlap ({chunk_overlap}) must be smaller than "
                    f"chunk_size ({chunk_size})"
                )
            )
        if max_chunks <= 0:
            raise ConfigurationError(message=f"max_chunks must be positive, got {max_chunks}")
        if min_chunk_chars < 0 or min_chunk_length_to_embed < 0:
            raise ConfigurationError(message="minimum chunk lengths must not be negative")

        self._chunk_size = chunk_size
        self._overlap = chunk_overlap
        self._min_chunk_chars = min_chunk_chars
        self._min_tokens = min_chunk_length_to_embed
        self._max_chunks = max_chunks
        self._overflow_policy = OverflowPolicy(overflow_policy)
        self._tokenizer = tokenizer or CharacterTokenizer()

    @classmethod
    def from_config(cls, config: VectorizationConfig) -> TextChunker:
        return cls(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            min_chunk_chars=config.min_chunk_chars,
            min_chunk_length_to_embed=config.min_chunk_length_to_embed,
            max_chunks=config.max_chunks,
            overflow_policy=config.overflow_policy,
            tokenizer=build_tokenizer(config.tokenizer),
        )

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_text(self, text: str) -> list[TextChunk]:
        """Chunk a single text unit."""
        return self.chunk_units([text])

    def chunk_units(self, units: Sequence[str]) -> list[TextChunk]:
        """Chunk the ordered text units of one document.

        Chunk indices run across units in order; ``unit_index`` records
        which unit each chunk came from.  Empty input returns an empty list.
        """
        chunks: list[TextChunk] = []
        # (unit_index, text) pieces left unchunked after max_chunks was hit
        overflow: list[tuple[int, str]] = []

        for unit_index, text in enumerate(units):
            if not text:
                continue
            if len(chunks) >= self._max_chunks:
                overflow.append((unit_index, text))
                continue

            bounds = self._tokenizer.boundaries(text)
            consumed = 0
            for start, end in self._windows(bounds):
                if len(chunks) >= self._max_chunks:
                    overflow.append((unit_index, text[consumed:]))
                    break
                char_start, char_end = bounds[start], bounds[end]
                consumed = char_end
                window = text[char_start:char_end]
                token_count = end - start
                if token_count < self._min_tokens or not window.strip():
                    continue
                chunks.append(
                    TextChunk(
                        text=window,
                        index=len(chunks),
                        unit_index=unit_index,
                        start=char_start,
                        end=char_end,
                        token_count=token_count,
                    )
                )

        overflow = [(u, piece) for u, piece in overflow if piece.strip()]
        if overflow:
            chunks = self._apply_overflow(chunks, overflow)

        logger.debug(
            "chunking_complete",
            num_units=len(units),
            num_chunks=len(chunks),
            tokenizer=self._tokenizer.name,
        )
        return chunks

    # ------------------------------------------------------------------
    # Windowing
    # ------------------------------------------------------------------

    def _windows(self, bounds: list[int]) -> Iterator[tuple[int, int]]:
        """Yield ``(start_token, end_token)`` windows covering every token."""
        n = len(bounds) - 1
        if n <= 0:
            return
        start = 0
        while True:
            end = min(start + self._chunk_size, n)
            while end < n and bounds[end] - bounds[start] < self._min_chunk_chars:
                end += 1
            yield start, end
            if end >= n:
                return
            start = max(end - self._overlap, start + 1)

    def _apply_overflow(
        self,
        chunks: list[TextChunk],
        overflow: list[tuple[int, str]],
    ) -> list[TextChunk]:
        dropped_chars = sum(len(piece) for _, piece in overflow)

        if self._overflow_policy is OverflowPolicy.TRUNCATE or not chunks:
            logger.warning(
                "chunk_limit_reached",
                max_chunks=self._max_chunks,
                dropped_chars=dropped_chars,
                policy=self._overflow_policy.value,
            )
            return chunks

        last = chunks[-1]
        text = last.text
        end = last.end
        token_count = last.token_count
        for unit_index, piece in overflow:
            if unit_index == last.unit_index:
                # Continues the same unit directly after the last window.
                text += piece
                end += len(piece)
            else:
                text += "\n\n" + piece
            token_count += self._tokenizer.count(piece)

        logger.warning(
            "chunk_limit_reached",
            max_chunks=self._max_chunks,
            merged_chars=dropped_chars,
            policy=self._overflow_policy.value,
        )
        merged = last.model_copy(update={"text": text, "end": end, "token_count": token_count})
        return [*chunks[:-1], merged]

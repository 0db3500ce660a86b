"""Unit tests for the TextChunker -- overlapping token windows with a chunk limit."""

from __future__ import annotations

import math
from unittest.mock import MagicMock

import pytest

from src.config.knowledge_base import OverflowPolicy, VectorizationConfig
from src.models.rag import TextChunk
from src.services.ingestion.chunker import (
    CharacterTokenizer,
    HuggingFaceTokenizer,
    TextChunker,
    WordTokenizer,
    build_tokenizer,
)
from src.utils.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_chunker(chunk_size: int = 1000, overlap: int = 200, **kwargs) -> TextChunker:
    """Build a TextChunker with a predictable configuration."""
    return TextChunker(chunk_size=chunk_size, chunk_overlap=overlap, **kwargs)


def _sample_text(length: int) -> str:
    """Deterministic text of exactly *length* characters."""
    base = "The quarterly report covers revenue, hiring, and office moves. "
    return (base * (length // len(base) + 1))[:length]


def _reconstruct(text_chunks: list[TextChunk]) -> str:
    """Join chunks of one unit, dropping each chunk's overlap with its predecessor."""
    out = ""
    prev_end = 0
    for chunk in text_chunks:
        skip = max(prev_end - chunk.start, 0)
        out += chunk.text[skip:]
        prev_end = chunk.end
    return out


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestWindowCount:
    """Window counts follow ceil((n - overlap) / (size - overlap))."""

    def test_three_thousand_chars_gives_four_chunks(self) -> None:
        chunks = _make_chunker().chunk_text(_sample_text(3000))

        assert len(chunks) == 4
        assert len(chunks) == math.ceil((3000 - 200) / (1000 - 200))

    def test_window_offsets(self) -> None:
        chunks = _make_chunker().chunk_text(_sample_text(3000))

        assert [(c.start, c.end) for c in chunks] == [
            (0, 1000),
            (800, 1800),
            (1600, 2600),
            (2400, 3000),
        ]
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_short_text_is_one_chunk(self) -> None:
        text = _sample_text(400)
        chunks = _make_chunker().chunk_text(text)

        assert len(chunks) == 1
        assert chunks[0].text == text
        assert chunks[0].token_count == 400

    def test_empty_text_gives_no_chunks(self) -> None:
        assert _make_chunker().chunk_text("") == []
        assert _make_chunker().chunk_units([]) == []


class TestOverlap:
    """Consecutive chunks share exactly chunk_overlap tokens."""

    def test_consecutive_chunks_share_overlap(self) -> None:
        text = _sample_text(3000)
        chunks = _make_chunker().chunk_text(text)

        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end - nxt.start == 200
            assert prev.text[-200:] == nxt.text[:200]

    def test_coverage_reconstructs_text(self) -> None:
        text = _sample_text(5321)
        chunks = _make_chunker(chunk_size=700, overlap=150).chunk_text(text)

        assert _reconstruct(chunks) == text


class TestMinimumLengths:
    """min_chunk_chars widens short windows; min_chunk_length_to_embed drops tiny ones."""

    def test_short_window_is_widened(self) -> None:
        text = _sample_text(1000)
        chunker = _make_chunker(chunk_size=100, overlap=10, min_chunk_chars=350)
        chunks = chunker.chunk_text(text)

        # Every window except possibly the last reaches 350 characters.
        for chunk in chunks[:-1]:
            assert len(chunk.text) >= 350

    def test_tiny_text_is_dropped(self) -> None:
        chunks = _make_chunker(min_chunk_length_to_embed=5).chunk_text("Hi")
        assert chunks == []

    def test_whitespace_only_is_dropped(self) -> None:
        chunks = _make_chunker().chunk_text("          \n\n          ")
        assert chunks == []


class TestUnits:
    """Each unit (page) is chunked separately; indices run across units."""

    def test_units_are_chunked_in_order(self) -> None:
        pages = [_sample_text(400), "", _sample_text(1500)]
        chunks = _make_chunker().chunk_units(pages)

        assert [c.unit_index for c in chunks] == [0, 2, 2]
        assert [c.index for c in chunks] == [0, 1, 2]


class TestDeterminism:
    def test_same_input_same_output(self) -> None:
        text = _sample_text(4200)
        first = _make_chunker().chunk_text(text)
        second = _make_chunker().chunk_text(text)

        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]


class TestChunkLimit:
    """max_chunks caps the output; the overflow policy decides the remainder."""

    def test_truncate_drops_remainder(self) -> None:
        text = _sample_text(5000)
        chunker = _make_chunker(max_chunks=2, overflow_policy=OverflowPolicy.TRUNCATE)
        chunks = chunker.chunk_text(text)

        assert len(chunks) == 2
        assert chunks[-1].end == 1800

    def test_merge_appends_remainder_to_last_chunk(self) -> None:
        text = _sample_text(5000)
        chunker = _make_chunker(max_chunks=2, overflow_policy=OverflowPolicy.MERGE)
        chunks = chunker.chunk_text(text)

        assert len(chunks) == 2
        assert chunks[-1].end == 5000
        assert chunks[-1].text == text[800:]
        assert _reconstruct(chunks) == text

    def test_merge_joins_later_units_with_blank_line(self) -> None:
        pages = [_sample_text(500), _sample_text(450)]
        chunker = _make_chunker(max_chunks=1, overflow_policy=OverflowPolicy.MERGE)
        chunks = chunker.chunk_units(pages)

        assert len(chunks) == 1
        assert chunks[0].text == pages[0] + "\n\n" + pages[1]


class TestTokenizers:
    def test_word_tokenizer_counts_words(self) -> None:
        tokenizer = WordTokenizer()
        assert tokenizer.count("one two  three\n") == 3
        assert tokenizer.boundaries("  lead word") == [0, 7, 11]

    def test_word_tokens_drive_window_size(self) -> None:
        text = " ".join(f"word{i}" for i in range(250))
        chunker = TextChunker(
            chunk_size=100,
            chunk_overlap=20,
            min_chunk_chars=0,
            tokenizer=WordTokenizer(),
        )
        chunks = chunker.chunk_text(text)

        assert [c.token_count for c in chunks] == [100, 100, 90]
        assert chunks[1].text.startswith("word80 ")

    def test_huggingface_offsets_are_made_contiguous(self) -> None:
        encoding = MagicMock()
        encoding.offsets = [(0, 5), (6, 11), (11, 12)]
        hf = MagicMock()
        hf.encode.return_value = encoding

        tokenizer = HuggingFaceTokenizer(hf, "test-model")

        assert tokenizer.boundaries("Hello world!") == [0, 6, 11, 12]
        assert tokenizer.name == "huggingface:test-model"

    def test_build_tokenizer_names(self) -> None:
        assert isinstance(build_tokenizer("character"), CharacterTokenizer)
        assert isinstance(build_tokenizer("word"), WordTokenizer)

    def test_build_tokenizer_rejects_unknown(self) -> None:
        with pytest.raises(ConfigurationError):
            build_tokenizer("sentencepiece")


class TestConfiguration:
    def test_overlap_must_be_smaller_than_size(self) -> None:
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=100, chunk_overlap=100)

    def test_from_config(self) -> None:
        config = VectorizationConfig(chunk_size=300, chunk_overlap=50, tokenizer="word")
        chunker = TextChunker.from_config(config)

        assert isinstance(chunker.tokenizer, WordTokenizer)

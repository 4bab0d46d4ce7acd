"""Unit tests for the TextChunker: recursive character splitting with overlap."""

from __future__ import annotations

import pytest

from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.services.ingestion.chunker import (
    DEFAULT_SEPARATORS,
    TRANSCRIPT_SEPARATORS,
    TextChunker,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_chunker(chunk_size: int = 200, overlap: int = 40) -> TextChunker:
    """Build a TextChunker with a predictable configuration."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap)


def _page(text: str, **metadata) -> SourcePage:
    return SourcePage(text=text, metadata=metadata)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_defaults(self) -> None:
        chunker = TextChunker()
        assert chunker.chunk_size == 1000
        assert chunker.overlap == 200

    @pytest.mark.parametrize(("size", "overlap"), [(0, 0), (-5, 0), (100, 100), (100, -1)])
    def test_invalid_parameters(self, size: int, overlap: int) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=size, overlap=overlap)


class TestBasicChunking:
    def test_short_text_is_one_chunk(self) -> None:
        chunks = _make_chunker().split([_page("Revenue rose 12%.")])
        assert [c.text for c in chunks] == ["Revenue rose 12%."]

    def test_multi_paragraph_text_produces_several_chunks(self, sample_report_text: str) -> None:
        chunks = _make_chunker().split([_page(sample_report_text)])
        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk.text.strip(), "No chunk should be empty"

    def test_chunk_count_decreases_with_larger_size(self, sample_report_text: str) -> None:
        small = _make_chunker(chunk_size=100, overlap=20).split([_page(sample_report_text)])
        large = _make_chunker(chunk_size=1000, overlap=100).split([_page(sample_report_text)])
        assert len(small) > len(large)

    @pytest.mark.parametrize("size", [50, 120, 300])
    def test_no_chunk_exceeds_chunk_size(self, sample_report_text: str, size: int) -> None:
        chunker = _make_chunker(chunk_size=size, overlap=size // 5)
        for chunk in chunker.split([_page(sample_report_text)]):
            assert len(chunk.text) <= size

    def test_unbroken_text_is_cut_by_characters(self) -> None:
        text = "x" * 450
        chunks = _make_chunker(chunk_size=100, overlap=20).split([_page(text)])
        assert all(len(c.text) <= 100 for c in chunks)
        assert "".join(c.text for c in chunks).count("x") >= 450

    def test_paragraphs_kept_whole_when_they_fit(self, sample_report_text: str) -> None:
        chunker = _make_chunker(chunk_size=400, overlap=80)
        paragraphs = [p.strip() for p in sample_report_text.split("\n\n")]
        joined = "\n".join(c.text for c in chunker.split([_page(sample_report_text)]))
        for paragraph in paragraphs:
            assert paragraph in joined


class TestOverlap:
    def test_consecutive_chunks_share_text(self) -> None:
        words = " ".join(f"word{i}" for i in range(200))
        chunks = _make_chunker(chunk_size=100, overlap=30).split([_page(words)])
        assert len(chunks) > 2
        for previous, current in zip(chunks, chunks[1:]):
            first_word = current.text.split(" ")[0]
            assert first_word in previous.text

    def test_zero_overlap_has_no_repeats(self) -> None:
        words = " ".join(f"w{i}" for i in range(100))
        chunks = _make_chunker(chunk_size=60, overlap=0).split([_page(words)])
        tokens = [token for chunk in chunks for token in chunk.text.split()]
        assert len(tokens) == len(set(tokens)) == 100


class TestPagesAndMetadata:
    def test_chunks_never_span_pages(self) -> None:
        pages = [_page("alpha " * 10, page_number=1), _page("beta " * 10, page_number=2)]
        chunks = _make_chunker(chunk_size=1000, overlap=100).split(pages)
        assert len(chunks) == 2
        assert "beta" not in chunks[0].text
        assert chunks[0].metadata["page_number"] == 1
        assert chunks[1].metadata["page_number"] == 2

    def test_metadata_is_copied_per_chunk(self) -> None:
        page = _page("one two three " * 30, source="report.pdf")
        chunks = _make_chunker(chunk_size=50, overlap=10).split([page])
        assert all(c.metadata == {"source": "report.pdf"} for c in chunks)
        chunks[0].metadata["source"] = "changed"
        assert chunks[1].metadata["source"] == "report.pdf"

    def test_blank_pages_are_skipped(self) -> None:
        chunks = _make_chunker().split([_page(""), _page("   \n\n  "), _page("content")])
        assert [c.text for c in chunks] == ["content"]

    def test_no_pages_gives_no_chunks(self) -> None:
        assert _make_chunker().split([]) == []


class TestDeterminism:
    def test_same_input_same_output(self, sample_report_text: str) -> None:
        chunker = _make_chunker(chunk_size=150, overlap=30)
        first = [c.text for c in chunker.split([_page(sample_report_text)])]
        second = [c.text for c in chunker.split([_page(sample_report_text)])]
        assert first == second


class TestSeparators:
    def test_video_uses_sentence_separator(self) -> None:
        assert TextChunker.separators_for(SourceKind.VIDEO) == TRANSCRIPT_SEPARATORS
        assert TextChunker.separators_for(SourceKind.WEB_PAGE) == DEFAULT_SEPARATORS
        assert TextChunker.separators_for(None) == DEFAULT_SEPARATORS

    def test_transcript_splits_at_sentence_ends(self) -> None:
        sentence = "The speaker talks about quarterly revenue growth"
        transcript = ". ".join([sentence] * 8)
        chunker = _make_chunker(chunk_size=120, overlap=0)
        chunks = chunker.split([_page(transcript)], source_kind=SourceKind.VIDEO)
        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk.text.startswith("The speaker")

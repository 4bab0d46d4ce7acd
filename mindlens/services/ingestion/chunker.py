"""Recursive character text splitting with overlapping windows.

Splits loaded :class:`~mindlens.models.rag.SourcePage` objects into
:class:`~mindlens.models.rag.TextChunk` windows sized for embedding models
(1000 characters with 200 characters of overlap by default).

The splitter tries separators in order -- paragraph breaks, line breaks,
spaces, and finally single characters -- and only falls through to a finer
separator for pieces that are still too large.  Pieces are then merged
greedily up to ``chunk_size``; each new window starts with up to
``overlap`` characters carried over from the tail of the previous one.

Properties that callers rely on:

* deterministic for fixed parameters and input;
* every window is at most ``chunk_size`` characters long, because the last
  separator (``""``) cuts anywhere;
* windows never span two pages, and each carries its page's metadata.
"""

from __future__ import annotations

import structlog

from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage, TextChunk

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")
# Transcripts are mostly one long line, so sentence ends come before spaces.
TRANSCRIPT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")


class TextChunker:
    """Splits pages into overlapping character windows.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 1000).
    overlap:
        Maximum characters shared by consecutive chunks (default 200).
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(
        self,
        pages: list[SourcePage],
        source_kind: SourceKind | None = None,
    ) -> list[TextChunk]:
        """Split *pages* into :class:`TextChunk` windows, in page order.

        Returns an empty list when no page has non-whitespace text.
        """
        separators = self.separators_for(source_kind)
        chunks: list[TextChunk] = []
        for page in pages:
            if not page.text or not page.text.strip():
                continue
            for window in self.split_text(page.text, separators):
                chunks.append(TextChunk(text=window, metadata=dict(page.metadata)))

        logger.debug(
            "text_chunked",
            pages=len(pages),
            chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks

    def split_text(self, text: str, separators: tuple[str, ...] = DEFAULT_SEPARATORS) -> list[str]:
        """Split a single string into windows using *separators* in order."""
        return self._split(text, list(separators))

    @staticmethod
    def separators_for(source_kind: SourceKind | None) -> tuple[str, ...]:
        if source_kind is SourceKind.VIDEO:
            return TRANSCRIPT_SEPARATORS
        return DEFAULT_SEPARATORS

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _split(self, text: str, separators: list[str]) -> list[str]:
        # Pick the first separator that occurs in the text; "" always does.
        separator = separators[-1]
        finer: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                finer = separators[i + 1 :]
                break

        pieces = text.split(separator) if separator else list(text)

        windows: list[str] = []
        fitting: list[str] = []
        for piece in pieces:
            if len(piece) < self._chunk_size:
                fitting.append(piece)
                continue
            if fitting:
                windows.extend(self._merge(fitting, separator))
                fitting = []
            if finer:
                windows.extend(self._split(piece, finer))
            else:
                # Only reachable without the "" separator: an atomic unit
                # larger than chunk_size is kept whole.
                windows.append(piece)
        if fitting:
            windows.extend(self._merge(fitting, separator))
        return windows

    def _merge(self, pieces: list[str], separator: str) -> list[str]:
        """Greedily join *pieces* into windows of at most ``chunk_size``."""
        sep_len = len(separator)
        windows: list[str] = []
        current: list[str] = []
        total = 0

        for piece in pieces:
            piece_len = len(piece)
            joined_len = total + piece_len + (sep_len if current else 0)
            if joined_len > self._chunk_size and current:
                window = self._join(current, separator)
                if window:
                    windows.append(window)
                # Drop pieces from the front until what remains fits the
                # overlap budget and leaves room for the incoming piece.
                while current and (
                    total > self._overlap
                    or total + piece_len + (sep_len if current else 0) > self._chunk_size
                ):
                    total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                    current.pop(0)
            current.append(piece)
            total += piece_len + (sep_len if len(current) > 1 else 0)

        window = self._join(current, separator)
        if window:
            windows.append(window)
        return windows

    @staticmethod
    def _join(pieces: list[str], separator: str) -> str:
        return separator.join(pieces).strip()

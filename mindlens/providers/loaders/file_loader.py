"""Source loader for uploaded files.

Reads the stored bytes through the blob store and picks a parser from the
file extension (falling back to magic bytes when the name has none):

    .pdf             → PyMuPDF, one page per PDF page
    .docx            → python-docx, one page for the whole document
    .epub            → ebooklib + BeautifulSoup, one page per chapter
    .rtf             → striprtf, one page
    .txt .md .csv .json → decoded as UTF-8, one page

Legacy ``.doc`` and every other format raise :class:`LoadError`.  An empty
or whitespace-only file yields no pages at all.
"""

from __future__ import annotations

import asyncio
import io
import os
import re
import tempfile
from collections.abc import AsyncIterator
from pathlib import PurePosixPath

import ebooklib
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup
from docx import Document
from ebooklib import epub
from striprtf.striprtf import rtf_to_text

from mindlens.interfaces.blob_store import IBlobStore
from mindlens.interfaces.source_loader import ISourceLoader
from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.utils.errors import LoadError

logger = structlog.get_logger(logger_name=__name__)

_PLAIN_TEXT_SUFFIXES = frozenset({".txt", ".md", ".csv", ".json"})
SUPPORTED_SUFFIXES = frozenset({".pdf", ".docx", ".epub", ".rtf"}) | _PLAIN_TEXT_SUFFIXES

# Upload names carry a "<timestamp>_" prefix; strip it for display.
_TIMESTAMP_PREFIX = re.compile(r"^\d+_")
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")


def _clean(text: str) -> str:
    text = _MULTI_SPACE.sub(" ", text)
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return text.strip()


class FileLoader(ISourceLoader):
    """Loads stored uploads into :class:`SourcePage` objects."""

    def __init__(self, blob_store: IBlobStore) -> None:
        self._blob_store = blob_store

    async def load(self, locator: str) -> AsyncIterator[SourcePage]:
        data = await self._blob_store.read(locator)
        display_name = _TIMESTAMP_PREFIX.sub("", PurePosixPath(locator).name)

        if not data.strip():
            logger.info("file_loader_empty", locator=locator, size=len(data))
            return

        suffix = self._detect_suffix(locator, data)
        logger.info("file_loader_started", locator=locator, format=suffix, size=len(data))

        try:
            if suffix == ".pdf":
                pages = await asyncio.to_thread(self._parse_pdf, data)
            elif suffix == ".docx":
                pages = await asyncio.to_thread(self._parse_docx, data)
            elif suffix == ".epub":
                pages = await asyncio.to_thread(self._parse_epub, data)
            elif suffix == ".rtf":
                pages = await asyncio.to_thread(self._parse_rtf, data)
            else:
                pages = [(None, self._decode(data), {})]
        except LoadError:
            raise
        except Exception as exc:
            raise LoadError(
                message=f"Could not parse {display_name}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        for page_number, text, extra in pages:
            text = _clean(text)
            if not text:
                continue
            metadata = {"source": display_name, **extra}
            if page_number is not None:
                metadata["page_number"] = page_number
            yield SourcePage(text=text, metadata=metadata)

    def get_source_kind(self) -> SourceKind:
        return SourceKind.FILE

    def get_provider_name(self) -> str:
        return "file_loader"

    def cleanup_after_load(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Format detection
    # ------------------------------------------------------------------

    def _detect_suffix(self, locator: str, data: bytes) -> str:
        suffix = PurePosixPath(locator).suffix.lower()
        if suffix in SUPPORTED_SUFFIXES:
            return suffix
        if suffix == ".doc":
            raise LoadError(
                message="Legacy .doc files are not supported; save the file as .docx",
                provider_name=self.get_provider_name(),
            )
        if not suffix:
            if data.startswith(b"%PDF-"):
                return ".pdf"
            if data.lstrip().startswith(b"{\\rtf"):
                return ".rtf"
        raise LoadError(
            message=f"Unsupported file type: {suffix or 'unknown'}",
            provider_name=self.get_provider_name(),
        )

    # ------------------------------------------------------------------
    # Parsers (blocking; run in a worker thread)
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(data: bytes) -> str:
        return data.decode("utf-8-sig", errors="replace")

    @staticmethod
    def _parse_rtf(data: bytes) -> list[tuple[int | None, str, dict]]:
        return [(None, rtf_to_text(FileLoader._decode(data)), {})]

    @staticmethod
    def _parse_pdf(data: bytes) -> list[tuple[int | None, str, dict]]:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            title = (doc.metadata or {}).get("title") or None
            extra: dict = {"total_pages": len(doc)}
            if title:
                extra["title"] = title
            return [
                (page_num + 1, doc[page_num].get_text("text"), extra)
                for page_num in range(len(doc))
            ]
        finally:
            doc.close()

    @staticmethod
    def _parse_docx(data: bytes) -> list[tuple[int | None, str, dict]]:
        document = Document(io.BytesIO(data))
        text = "\n\n".join(p.text for p in document.paragraphs if p.text.strip())
        title = document.core_properties.title or None
        return [(None, text, {"title": title} if title else {})]

    @staticmethod
    def _parse_epub(data: bytes) -> list[tuple[int | None, str, dict]]:
        # ebooklib reads from a path, so the bytes go through a temp file.
        fd, tmp_path = tempfile.mkstemp(suffix=".epub")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            book = epub.read_epub(tmp_path, options={"ignore_ncx": True})
        finally:
            os.unlink(tmp_path)

        titles = book.get_metadata("DC", "title")
        book_title = titles[0][0] if titles else None

        chapters: list[tuple[int | None, str, dict]] = []
        for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
            html = item.get_content().decode("utf-8", errors="replace")
            soup = BeautifulSoup(html, "html.parser")
            heading = soup.find(re.compile(r"^h[1-3]$"))
            extra: dict = {"chapter": heading.get_text(strip=True)} if heading else {}
            if book_title:
                extra["title"] = book_title
            chapters.append((len(chapters) + 1, soup.get_text(separator="\n"), extra))
        return chapters

"""Source loader for video transcripts (YouTube).

Resolves the video's info with ``yt-dlp`` (no media download), chooses a
caption track in the preferred languages, downloads the ``json3`` form of
that track with httpx and yields the whole transcript as a single page
carrying the video's title, description, thumbnail, duration and language.

Track choice: languages are tried in preference order; within a language,
uploaded subtitles win over automatic captions (configurable).  An exact
language code beats a regional variant (``en`` before ``en-GB``).
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import structlog
import yt_dlp
from yt_dlp.utils import DownloadError

from mindlens.interfaces.source_loader import ISourceLoader
from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.utils.errors import LoadError

logger = structlog.get_logger(logger_name=__name__)

_VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|"
    r"youtube\.com/v/|youtube\.com/shorts/)([a-zA-Z0-9_-]{11})"
)
_WHITESPACE = re.compile(r"\s+")


def extract_video_id(url: str) -> str | None:
    """Return the 11-character YouTube video id in *url*, or ``None``."""
    match = _VIDEO_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def _ytdlp_extract_info(url: str) -> dict[str, Any]:
    options = {
        "skip_download": True,
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
    }
    with yt_dlp.YoutubeDL(options) as ydl:
        return ydl.extract_info(url, download=False)


class TranscriptLoader(ISourceLoader):
    """Loads a YouTube video's captions into one :class:`SourcePage`.

    Parameters
    ----------
    languages:
        Caption languages in preference order.
    prefer_manual_captions:
        Try uploaded subtitles before automatic captions.
    timeout:
        Timeout for the caption download, in seconds.
    info_extractor:
        Callable returning yt-dlp's info dict for a URL.  Blocking; it is
        run in a worker thread.  Defaults to ``yt_dlp.YoutubeDL``.
    transport:
        Optional httpx transport for the caption download.
    """

    def __init__(
        self,
        languages: list[str] | None = None,
        prefer_manual_captions: bool = True,
        timeout: float = 30.0,
        info_extractor: Callable[[str], dict[str, Any]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._languages = list(languages or ["en"])
        self._prefer_manual = prefer_manual_captions
        self._timeout = timeout
        self._extract_info = info_extractor or _ytdlp_extract_info
        self._transport = transport

    async def load(self, locator: str) -> AsyncIterator[SourcePage]:
        video_id = extract_video_id(locator)
        if video_id is None:
            raise LoadError(
                message=f"Not a recognised YouTube URL: {locator!r}",
                provider_name=self.get_provider_name(),
            )
        watch_url = f"https://www.youtube.com/watch?v={video_id}"

        try:
            info = await asyncio.to_thread(self._extract_info, watch_url)
        except DownloadError as exc:
            raise LoadError(
                message=f"Could not resolve video {video_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        track = self._choose_track(info or {})
        if track is None:
            raise LoadError(
                message=(
                    f"No transcript available for video {video_id} in "
                    f"{', '.join(self._languages)}"
                ),
                provider_name=self.get_provider_name(),
            )
        language, caption_url, automatic = track

        text = await self._download_json3(caption_url, video_id)
        if not text:
            logger.info("transcript_empty", video_id=video_id, language=language)
            return

        logger.info(
            "transcript_loaded",
            video_id=video_id,
            language=language,
            automatic=automatic,
            characters=len(text),
        )
        metadata: dict[str, Any] = {
            "source": watch_url,
            "video_id": video_id,
            "title": info.get("title"),
            "description": info.get("description"),
            "thumbnail": info.get("thumbnail"),
            "duration": info.get("duration"),
            "author": info.get("uploader") or info.get("channel"),
            "language": language,
            "automatic_captions": automatic,
        }
        yield SourcePage(
            text=text,
            metadata={key: value for key, value in metadata.items() if value is not None},
        )

    def get_source_kind(self) -> SourceKind:
        return SourceKind.VIDEO

    def get_provider_name(self) -> str:
        return "transcript_loader"

    # ------------------------------------------------------------------
    # Track selection
    # ------------------------------------------------------------------

    def _choose_track(self, info: dict[str, Any]) -> tuple[str, str, bool] | None:
        """Return (language, json3 url, is_automatic) for the best track."""
        manual = info.get("subtitles") or {}
        automatic = info.get("automatic_captions") or {}
        sources = [(manual, False), (automatic, True)]
        if not self._prefer_manual:
            sources.reverse()

        for wanted in self._languages:
            for tracks, is_auto in sources:
                language = self._match_language(wanted, tracks)
                if language is None:
                    continue
                for fmt in tracks[language]:
                    if fmt.get("ext") == "json3" and fmt.get("url"):
                        return language, fmt["url"], is_auto
        return None

    @staticmethod
    def _match_language(wanted: str, tracks: dict[str, Any]) -> str | None:
        if wanted in tracks:
            return wanted
        for code in sorted(tracks):
            if code.startswith(f"{wanted}-"):
                return code
        return None

    # ------------------------------------------------------------------
    # Caption download
    # ------------------------------------------------------------------

    async def _download_json3(self, caption_url: str, video_id: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout), transport=self._transport
            ) as client:
                response = await client.get(caption_url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise LoadError(
                message=f"Could not download transcript for video {video_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return self._json3_to_text(payload)

    @staticmethod
    def _json3_to_text(payload: dict[str, Any]) -> str:
        """Flatten YouTube's json3 caption events into plain text."""
        parts: list[str] = []
        for event in payload.get("events", []):
            for seg in event.get("segs") or []:
                piece = seg.get("utf8", "")
                if piece and piece != "\n":
                    parts.append(piece)
        return _WHITESPACE.sub(" ", " ".join(parts)).strip()

"""Source loaders, one per source kind.

    - FileLoader       : stored uploads (PDF, DOCX, EPUB, RTF, plain text)
    - WebLoader        : web pages (bounded same-origin crawl) and GitHub repos
    - TranscriptLoader : YouTube captions via yt-dlp

SourceLoaderRegistry maps each SourceKind to its loader.
"""

from mindlens.providers.loaders.file_loader import FileLoader
from mindlens.providers.loaders.registry import SourceLoaderRegistry
from mindlens.providers.loaders.transcript_loader import TranscriptLoader, extract_video_id
from mindlens.providers.loaders.web_loader import WebLoader

__all__ = [
    "FileLoader",
    "SourceLoaderRegistry",
    "TranscriptLoader",
    "WebLoader",
    "extract_video_id",
]

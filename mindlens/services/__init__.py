"""Application services: ingestion, retrieval, answer streaming and the library."""

from mindlens.services.answer_streamer import AnswerStreamer
from mindlens.services.ingestion import IngestionService, TextChunker
from mindlens.services.library_service import LibraryService
from mindlens.services.retrieval_service import RetrievalService

__all__ = [
    "AnswerStreamer",
    "IngestionService",
    "LibraryService",
    "RetrievalService",
    "TextChunker",
]

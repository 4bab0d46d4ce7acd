"""Utility modules for MindLens.

- **errors** -- Domain-specific exception hierarchy rooted at MindLensError;
  each pipeline stage raises its own subclass so callers (the ingestion
  orchestrator, the API error middleware) can handle failures granularly.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from mindlens.utils.errors import (
    AccessDeniedError,
    ConfigurationError,
    EmbeddingServiceError,
    EmptySourceError,
    GenerationError,
    IndexServiceError,
    InvalidStateTransitionError,
    LoadError,
    MetadataStoreError,
    MindLensError,
    NotFoundError,
    ValidationError,
)
from mindlens.utils.logging import configure_logging, get_logger

__all__ = [
    "AccessDeniedError",
    "ConfigurationError",
    "EmbeddingServiceError",
    "EmptySourceError",
    "GenerationError",
    "IndexServiceError",
    "InvalidStateTransitionError",
    "LoadError",
    "MetadataStoreError",
    "MindLensError",
    "NotFoundError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]

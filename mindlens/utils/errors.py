"""Custom exception hierarchy for MindLens.

All application exceptions inherit from :class:`MindLensError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "web_loader") caused the
failure.

The hierarchy is organized by where in the pipeline the failure happens:

    MindLensError  (base -- catch-all for any MindLens error)
    +-- ValidationError              (malformed / missing request input)
    +-- AccessDeniedError            (scope references another owner's data)
    +-- NotFoundError                (collection / attachment does not exist)
    +-- LoadError                    (source acquisition failed)
    +-- EmptySourceError             (source loaded but had no content)
    +-- EmbeddingServiceError        (embedding capability failed)
    +-- IndexServiceError            (vector index failed)
    +-- GenerationError              (answer synthesis failed)
    +-- InvalidStateTransitionError  (attachment lifecycle violation)
    +-- MetadataStoreError           (metadata persistence failed)
    +-- ConfigurationError           (startup / missing config)

Request-level errors (validation, access, not-found) are raised before any
I/O.  Everything raised after ingestion has started is recorded on the
attachment as a ``failed`` state by the ingestion orchestrator and then
re-raised.
"""


class MindLensError(Exception):
    """Base exception for all MindLens errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Request-level errors (raised before any I/O, never mutate state)
# ---------------------------------------------------------------------------

class ValidationError(MindLensError):
    """Raised when required input is missing or malformed (locator, query text)."""

    def __init__(
        self,
        message: str = "Invalid request input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AccessDeniedError(MindLensError):
    """Raised when a scope references a collection the caller does not own."""

    def __init__(
        self,
        message: str = "Collection not found or access denied",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(MindLensError):
    """Raised when a collection or attachment does not exist for the owner."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Acquisition errors
# ---------------------------------------------------------------------------

class LoadError(MindLensError):
    """Raised when a source cannot be acquired.

    Covers unreachable URLs, unsupported or corrupt files, and videos with
    no transcript in the preferred languages.
    """

    def __init__(
        self,
        message: str = "Source could not be loaded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptySourceError(MindLensError):
    """Raised when a source loaded successfully but produced no extractable text."""

    def __init__(
        self,
        message: str = "No content found to index",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Downstream capability errors
# ---------------------------------------------------------------------------

class EmbeddingServiceError(MindLensError):
    """Raised when the embedding capability is unavailable or rejects a request."""

    def __init__(
        self,
        message: str = "Embedding service failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexServiceError(MindLensError):
    """Raised when the vector index is unavailable or rejects a request."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(MindLensError):
    """Raised when answer synthesis fails, possibly mid-stream."""

    def __init__(
        self,
        message: str = "Answer generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# State / persistence / configuration errors
# ---------------------------------------------------------------------------

class InvalidStateTransitionError(MindLensError):
    """Raised when an attachment lifecycle transition is not allowed."""

    def __init__(
        self,
        message: str = "Invalid attachment state transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MetadataStoreError(MindLensError):
    """Raised when the collection / attachment metadata store fails."""

    def __init__(
        self,
        message: str = "Metadata store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(MindLensError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

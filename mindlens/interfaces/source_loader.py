"""Abstract base class for source loaders.

A source loader turns a locator (URL or stored-file reference) into a lazy,
finite, non-restartable stream of :class:`~mindlens.models.rag.SourcePage`
objects.  There is one loader per :class:`~mindlens.models.library.SourceKind`,
wired together by :class:`~mindlens.providers.loaders.registry.SourceLoaderRegistry`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage


# Concrete implementations: FileLoader, WebLoader, TranscriptLoader
# Located in: mindlens/providers/loaders/
class ISourceLoader(ABC):
    """Contract for acquiring the text content of one source."""

    @abstractmethod
    def load(self, locator: str) -> AsyncIterator[SourcePage]:
        """Yield the pages of the source at *locator*.

        Implementations are async generators.  Loading is lazy: nothing is
        fetched until the caller starts iterating.

        Parameters
        ----------
        locator:
            A URL (web page / video) or a stored-file reference (file).

        Yields
        ------
        SourcePage
            Zero or more pages.  An empty source yields nothing.

        Raises
        ------
        mindlens.utils.errors.LoadError
            If the source is unreachable, malformed, unsupported or
            (for videos) has no transcript in the preferred languages.
        """

    @abstractmethod
    def get_source_kind(self) -> SourceKind:
        """Return the source kind this loader handles."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"web_loader"``."""

    def cleanup_after_load(self) -> bool:
        """Return ``True`` if the locator's stored artifact is transient.

        The ingestion orchestrator deletes transient artifacts (uploaded
        files) once loading has finished, whatever the outcome.
        """
        return False

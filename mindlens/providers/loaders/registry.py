"""Source loader registry: one loader per :class:`SourceKind`.

Adding a source kind means adding one loader and registering it here; the
ingestion orchestrator only ever talks to the registry.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from mindlens.interfaces.source_loader import ISourceLoader
from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.utils.errors import LoadError

logger = structlog.get_logger(logger_name=__name__)


class SourceLoaderRegistry:
    """Dispatches ``load(kind, locator)`` to the loader registered for *kind*."""

    def __init__(self, loaders: list[ISourceLoader] | None = None) -> None:
        self._loaders: dict[SourceKind, ISourceLoader] = {}
        for loader in loaders or []:
            self.register(loader)

    def register(self, loader: ISourceLoader) -> None:
        kind = loader.get_source_kind()
        if kind in self._loaders:
            logger.warning(
                "source_loader_replaced",
                kind=kind.value,
                previous=self._loaders[kind].get_provider_name(),
                replacement=loader.get_provider_name(),
            )
        self._loaders[kind] = loader

    def get(self, kind: SourceKind) -> ISourceLoader:
        try:
            return self._loaders[kind]
        except KeyError:
            raise LoadError(
                message=f"No loader registered for source kind {kind.value!r}"
            ) from None

    def load(self, kind: SourceKind, locator: str) -> AsyncIterator[SourcePage]:
        return self.get(kind).load(locator)

    def kinds(self) -> list[SourceKind]:
        return list(self._loaders)

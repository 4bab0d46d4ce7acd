"""Local-directory blob store for uploaded files.

Files live under ``upload_dir``; the locator handed back to callers is the
relative reference ``upload/<name>``.  Locators that resolve outside the
upload directory are rejected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from mindlens.interfaces.blob_store import IBlobStore
from mindlens.utils.errors import LoadError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

_LOCATOR_PREFIX = "upload/"


class LocalBlobStore(IBlobStore):
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, root_dir: str | Path = "data/uploads") -> None:
        self._root = Path(root_dir)

    @property
    def root(self) -> Path:
        return self._root

    async def save(self, name: str, data: bytes) -> str:
        locator = f"{_LOCATOR_PREFIX}{name}"
        path = self._resolve(locator)
        await asyncio.to_thread(self._write, path, data)
        logger.info("blob_saved", locator=locator, size=len(data))
        return locator

    async def read(self, locator: str) -> bytes:
        path = self._resolve(locator)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise LoadError(
                message=f"Stored file not found: {locator}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, locator: str) -> bool:
        path = self._resolve(locator)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        logger.info("blob_deleted", locator=locator)
        return True

    async def exists(self, locator: str) -> bool:
        return self._resolve(locator).is_file()

    def get_provider_name(self) -> str:
        return "local_blob"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve(self, locator: str) -> Path:
        """Map a locator onto a path inside the root, rejecting traversal."""
        if not locator or not locator.startswith(_LOCATOR_PREFIX):
            raise ValidationError(
                message=f"Invalid stored-file reference: {locator!r}",
                provider_name=self.get_provider_name(),
            )
        relative = locator[len(_LOCATOR_PREFIX):]
        root = self._root.resolve()
        path = (root / relative).resolve()
        if not relative or path.parent != root:
            raise ValidationError(
                message=f"Invalid stored-file reference: {locator!r}",
                provider_name=self.get_provider_name(),
            )
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

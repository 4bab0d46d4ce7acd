"""Abstract base class for stored-file (blob) providers.

Uploaded files are saved once, referenced from an attachment's ``locator``,
read by the file loader during ingestion and deleted afterwards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalBlobStore (mindlens/providers/blob/)
class IBlobStore(ABC):
    """Contract for saving, reading and deleting stored files."""

    @abstractmethod
    async def save(self, name: str, data: bytes) -> str:
        """Store *data* under *name* and return the locator that reads it back."""

    @abstractmethod
    async def read(self, locator: str) -> bytes:
        """Return the bytes behind *locator*.

        Raises
        ------
        mindlens.utils.errors.LoadError
            If nothing is stored under *locator*.
        mindlens.utils.errors.ValidationError
            If *locator* is malformed or escapes the store.
        """

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """Delete the blob; returns ``False`` when it was already gone."""

    @abstractmethod
    async def exists(self, locator: str) -> bool:
        """Return ``True`` if a blob is stored under *locator*."""

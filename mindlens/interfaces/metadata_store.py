"""Abstract base class for the collection / attachment metadata store.

The metadata store is the system of record for collections and their
attachments.  It is written together with the vector index in an explicit
two-phase fashion (metadata first, then vectors); it never stores vectors.

All lookups are owner-scoped: asking for another owner's row behaves
exactly like asking for a row that does not exist (``None``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mindlens.models.library import Attachment, AttachmentStatus, Collection


# Concrete implementation: SQLiteMetadataStore (mindlens/providers/metadata/)
class IMetadataStore(ABC):
    """Contract for async CRUD over collections and attachments."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indices if needed.  Safe to call repeatedly."""

    @abstractmethod
    async def close(self) -> None:
        """Release any held connections."""

    # -- Collections ---------------------------------------------------------

    @abstractmethod
    async def create_collection(self, collection: Collection) -> Collection:
        """Persist a new collection and return it."""

    @abstractmethod
    async def get_collection(self, owner_id: str, collection_id: str) -> Collection | None:
        """Return the collection if it exists and belongs to *owner_id*."""

    @abstractmethod
    async def list_collections(self, owner_id: str) -> list[Collection]:
        """Return the owner's collections, most recently updated first."""

    @abstractmethod
    async def update_collection(
        self, owner_id: str, collection_id: str, fields: dict[str, Any]
    ) -> Collection | None:
        """Apply *fields* (title / description / cover_image / is_private).

        Returns the updated collection, or ``None`` if it does not exist.
        """

    @abstractmethod
    async def delete_collection(self, owner_id: str, collection_id: str) -> bool:
        """Delete the collection and all of its attachments.

        Returns ``True`` if a collection was deleted.
        """

    # -- Attachments ---------------------------------------------------------

    @abstractmethod
    async def create_attachment(self, attachment: Attachment) -> Attachment:
        """Persist a new attachment and return it."""

    @abstractmethod
    async def get_attachment(self, owner_id: str, attachment_id: str) -> Attachment | None:
        """Return the attachment if it exists and belongs to *owner_id*."""

    @abstractmethod
    async def list_attachments(self, owner_id: str, collection_id: str) -> list[Attachment]:
        """Return the collection's attachments, newest first."""

    @abstractmethod
    async def count_attachments(self, owner_id: str, collection_id: str) -> int:
        """Return how many attachments the collection holds."""

    @abstractmethod
    async def save_attachment(self, attachment: Attachment) -> Attachment:
        """Overwrite the stored attachment row with *attachment*.

        Used for renames, metadata refreshes and status transitions.

        Raises
        ------
        mindlens.utils.errors.NotFoundError
            If the attachment does not exist.
        """

    @abstractmethod
    async def set_attachment_status(
        self,
        owner_id: str,
        attachment_id: str,
        status: AttachmentStatus,
        metadata_updates: dict[str, Any] | None = None,
    ) -> Attachment:
        """Move the attachment through its lifecycle and persist the result.

        Raises
        ------
        mindlens.utils.errors.NotFoundError
            If the attachment does not exist for *owner_id*.
        mindlens.utils.errors.InvalidStateTransitionError
            If the transition is not allowed.
        """

    @abstractmethod
    async def delete_attachment(self, owner_id: str, attachment_id: str) -> bool:
        """Delete the attachment row.  Returns ``True`` if one was deleted."""

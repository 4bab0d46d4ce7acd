"""SQLite-backed metadata store for collections and attachments.

Persists the library to a local SQLite database at ``data/mindlens.db``.
Uses ``aiosqlite`` for async I/O with one short-lived connection per
operation.  Attachment metadata is stored as a JSON document; timestamps
are ISO-8601 UTC strings.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from mindlens.interfaces.metadata_store import IMetadataStore
from mindlens.models.library import (
    Attachment,
    AttachmentMetadata,
    AttachmentStatus,
    Collection,
    SourceKind,
    transition_status,
    utc_now,
)
from mindlens.utils.errors import MetadataStoreError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/mindlens.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS collections (
    collection_id  TEXT PRIMARY KEY,
    owner_id       TEXT NOT NULL,
    title          TEXT NOT NULL,
    description    TEXT NOT NULL DEFAULT '',
    cover_image    TEXT,
    is_private     INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS attachments (
    attachment_id            TEXT PRIMARY KEY,
    collection_id            TEXT NOT NULL
                             REFERENCES collections(collection_id) ON DELETE CASCADE,
    owner_id                 TEXT NOT NULL,
    source_kind              TEXT NOT NULL,
    name                     TEXT NOT NULL,
    locator                  TEXT NOT NULL,
    original_file_name       TEXT,
    file_size                INTEGER,
    mime_type                TEXT,
    status                   TEXT NOT NULL,
    metadata                 TEXT NOT NULL DEFAULT '{}',
    processing_started_at    TEXT,
    processing_completed_at  TEXT,
    created_at               TEXT NOT NULL,
    updated_at               TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_collections_owner ON collections(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_attachments_collection ON attachments(collection_id);",
    "CREATE INDEX IF NOT EXISTS idx_attachments_owner ON attachments(owner_id);",
]

_ATTACHMENT_COLUMNS = (
    "attachment_id, collection_id, owner_id, source_kind, name, locator, "
    "original_file_name, file_size, mime_type, status, metadata, "
    "processing_started_at, processing_completed_at, created_at, updated_at"
)

_COLLECTION_COLUMNS = (
    "collection_id, owner_id, title, description, cover_image, is_private, "
    "created_at, updated_at"
)

_UPDATABLE_COLLECTION_FIELDS = frozenset({"title", "description", "cover_image", "is_private"})


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed collection / attachment persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                yield db
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                message=f"SQLite error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create the collections / attachments tables and indices."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    async def close(self) -> None:
        # Connections are opened per operation; nothing is held open.
        return None

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def create_collection(self, collection: Collection) -> Collection:
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO collections ({_COLLECTION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    collection.collection_id,
                    collection.owner_id,
                    collection.title,
                    collection.description,
                    collection.cover_image,
                    int(collection.is_private),
                    _iso(collection.created_at),
                    _iso(collection.updated_at),
                ),
            )
            await db.commit()
        logger.info(
            "collection_created",
            collection_id=collection.collection_id,
            owner_id=collection.owner_id,
        )
        return collection

    async def get_collection(self, owner_id: str, collection_id: str) -> Collection | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLLECTION_COLUMNS} FROM collections "
                "WHERE collection_id = ? AND owner_id = ?",
                (collection_id, owner_id),
            )
            row = await cursor.fetchone()
        return self._row_to_collection(row) if row else None

    async def list_collections(self, owner_id: str) -> list[Collection]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLLECTION_COLUMNS} FROM collections "
                "WHERE owner_id = ? ORDER BY updated_at DESC, rowid DESC",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_collection(r) for r in rows]

    async def update_collection(
        self, owner_id: str, collection_id: str, fields: dict[str, Any]
    ) -> Collection | None:
        unknown = set(fields) - _UPDATABLE_COLLECTION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update collection fields: {sorted(unknown)}")

        current = await self.get_collection(owner_id, collection_id)
        if current is None:
            return None
        if not fields:
            return current

        updated = Collection.model_validate(
            {**current.model_dump(), **fields, "updated_at": utc_now()}
        )
        async with self._connect() as db:
            await db.execute(
                "UPDATE collections SET title = ?, description = ?, cover_image = ?, "
                "is_private = ?, updated_at = ? WHERE collection_id = ? AND owner_id = ?",
                (
                    updated.title,
                    updated.description,
                    updated.cover_image,
                    int(updated.is_private),
                    _iso(updated.updated_at),
                    collection_id,
                    owner_id,
                ),
            )
            await db.commit()
        return updated

    async def delete_collection(self, owner_id: str, collection_id: str) -> bool:
        async with self._connect() as db:
            # Explicit delete in addition to ON DELETE CASCADE, for databases
            # created before the foreign key existed.
            await db.execute(
                "DELETE FROM attachments WHERE collection_id = ? AND owner_id = ?",
                (collection_id, owner_id),
            )
            cursor = await db.execute(
                "DELETE FROM collections WHERE collection_id = ? AND owner_id = ?",
                (collection_id, owner_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("collection_deleted", collection_id=collection_id, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def create_attachment(self, attachment: Attachment) -> Attachment:
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO attachments ({_ATTACHMENT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._attachment_params(attachment),
            )
            await db.commit()
        logger.info(
            "attachment_created",
            attachment_id=attachment.attachment_id,
            collection_id=attachment.collection_id,
            source_kind=attachment.source_kind.value,
        )
        return attachment

    async def get_attachment(self, owner_id: str, attachment_id: str) -> Attachment | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments "
                "WHERE attachment_id = ? AND owner_id = ?",
                (attachment_id, owner_id),
            )
            row = await cursor.fetchone()
        return self._row_to_attachment(row) if row else None

    async def list_attachments(self, owner_id: str, collection_id: str) -> list[Attachment]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments "
                "WHERE collection_id = ? AND owner_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (collection_id, owner_id),
            )
            rows = await cursor.fetchall()
        return [self._row_to_attachment(r) for r in rows]

    async def count_attachments(self, owner_id: str, collection_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM attachments WHERE collection_id = ? AND owner_id = ?",
                (collection_id, owner_id),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def save_attachment(self, attachment: Attachment) -> Attachment:
        params = self._attachment_params(attachment)
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE attachments SET collection_id = ?, owner_id = ?, source_kind = ?, "
                "name = ?, locator = ?, original_file_name = ?, file_size = ?, "
                "mime_type = ?, status = ?, metadata = ?, processing_started_at = ?, "
                "processing_completed_at = ?, created_at = ?, updated_at = ? "
                "WHERE attachment_id = ? AND owner_id = ?",
                (*params[1:], attachment.attachment_id, attachment.owner_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(
                    message=f"Attachment {attachment.attachment_id} not found",
                    provider_name=self.get_provider_name(),
                )
        return attachment

    async def set_attachment_status(
        self,
        owner_id: str,
        attachment_id: str,
        status: AttachmentStatus,
        metadata_updates: dict[str, Any] | None = None,
    ) -> Attachment:
        current = await self.get_attachment(owner_id, attachment_id)
        if current is None:
            raise NotFoundError(
                message=f"Attachment {attachment_id} not found",
                provider_name=self.get_provider_name(),
            )
        updated = transition_status(current, status, metadata_updates)
        await self.save_attachment(updated)
        logger.info(
            "attachment_status_changed",
            attachment_id=attachment_id,
            from_status=current.status.value,
            to_status=status.value,
        )
        return updated

    async def delete_attachment(self, owner_id: str, attachment_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM attachments WHERE attachment_id = ? AND owner_id = ?",
                (attachment_id, owner_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("attachment_deleted", attachment_id=attachment_id, deleted=deleted)
        return deleted

    def get_provider_name(self) -> str:
        return "sqlite_metadata"

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _attachment_params(attachment: Attachment) -> tuple[Any, ...]:
        return (
            attachment.attachment_id,
            attachment.collection_id,
            attachment.owner_id,
            attachment.source_kind.value,
            attachment.name,
            attachment.locator,
            attachment.original_file_name,
            attachment.file_size,
            attachment.mime_type,
            attachment.status.value,
            attachment.metadata.model_dump_json(exclude_none=True),
            _iso(attachment.processing_started_at),
            _iso(attachment.processing_completed_at),
            _iso(attachment.created_at),
            _iso(attachment.updated_at),
        )

    @staticmethod
    def _row_to_collection(row: aiosqlite.Row) -> Collection:
        return Collection(
            collection_id=row["collection_id"],
            owner_id=row["owner_id"],
            title=row["title"],
            description=row["description"] or "",
            cover_image=row["cover_image"],
            is_private=bool(row["is_private"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    @staticmethod
    def _row_to_attachment(row: aiosqlite.Row) -> Attachment:
        return Attachment(
            attachment_id=row["attachment_id"],
            collection_id=row["collection_id"],
            owner_id=row["owner_id"],
            source_kind=SourceKind(row["source_kind"]),
            name=row["name"],
            locator=row["locator"],
            original_file_name=row["original_file_name"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            status=AttachmentStatus(row["status"]),
            metadata=AttachmentMetadata(**json.loads(row["metadata"] or "{}")),
            processing_started_at=_parse_dt(row["processing_started_at"]),
            processing_completed_at=_parse_dt(row["processing_completed_at"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

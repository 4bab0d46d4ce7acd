"""Metadata store implementations (collections and attachments)."""

from mindlens.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

__all__ = ["SQLiteMetadataStore"]

"""Stored-file (blob) implementations."""

from mindlens.providers.blob.local_blob_store import LocalBlobStore

__all__ = ["LocalBlobStore"]

"""Attachment ingestion pipeline for the MindLens vector index.

Orchestrates the full pipeline: **load -> chunk -> stamp -> embed -> store**.

1. **Load** (providers/loaders/) -- the loader registered for the
   attachment's source kind turns its URL or stored file into SourcePages.

2. **Chunk** (chunker.py / TextChunker) -- recursive character splitting
   into overlapping windows, preferring paragraph and line boundaries.

3. **Stamp** -- every chunk gets the owner, collection and attachment ids
   plus denormalized titles used at answer time.

4. **Embed + Store** (via IEmbeddingProvider / IVectorStoreProvider) --
   the attachment's previous chunks are removed and the new ones are
   written to the owner's tenant namespace.

The IngestionService class runs all stages and keeps the attachment's
processing status in the metadata store current.
"""

from mindlens.services.ingestion.chunker import TextChunker
from mindlens.services.ingestion.ingestion_service import IngestionService

__all__ = [
    "IngestionService",
    "TextChunker",
]

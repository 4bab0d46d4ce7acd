"""Unit tests for ChromaDBProvider against a temporary persistent client."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mindlens.models.library import SourceKind
from mindlens.providers.vector_store.chromadb_provider import ChromaDBProvider
from mindlens.utils.errors import IndexServiceError
from tests.conftest import _hash_to_vector, make_chunk

_NS = "mindlens-owner-a"


@pytest.fixture
def provider(tmp_path: Path) -> ChromaDBProvider:
    return ChromaDBProvider(persist_directory=str(tmp_path / "chromadb"), batch_size=2)


async def _seed(provider: ChromaDBProvider) -> None:
    chunks = [
        make_chunk("quarterly revenue rose twelve percent", index=0),
        make_chunk("the board approved a buyback", index=1),
        make_chunk("hosting costs fell sharply", index=2),
        make_chunk("my cat sleeps all day", collection_id="book-2", attachment_id="att-2",
                   collection_title="Notes", attachment_name="Diary"),
    ]
    await provider.upsert(_NS, chunks, [_hash_to_vector(c.text) for c in chunks])


class TestChromaDBProvider:
    @pytest.mark.asyncio
    async def test_upsert_batches_and_counts(self, provider: ChromaDBProvider) -> None:
        await _seed(provider)
        assert await provider.count(_NS) == 4

    @pytest.mark.asyncio
    async def test_query_round_trips_metadata(self, provider: ChromaDBProvider) -> None:
        await _seed(provider)
        results = await provider.query(
            _NS,
            _hash_to_vector("what happened to revenue"),
            filters={"owner_id": "owner-a", "collection_id": "book-1"},
            top_k=3,
        )
        assert len(results) == 3
        top = results[0]
        assert top.chunk.text == "quarterly revenue rose twelve percent"
        assert top.chunk.chunk_id == "att-1:0"
        assert top.chunk.metadata.owner_id == "owner-a"
        assert top.chunk.metadata.source_kind is SourceKind.WEB_PAGE
        assert top.chunk.metadata.collection_title == "Research"
        assert top.chunk.metadata.page_number is None
        assert -1.0 <= top.similarity_score <= 1.0
        assert {r.chunk.metadata.collection_id for r in results} == {"book-1"}

    @pytest.mark.asyncio
    async def test_query_other_owner_returns_nothing(self, provider: ChromaDBProvider) -> None:
        await _seed(provider)
        results = await provider.query(
            _NS, _hash_to_vector("revenue"), filters={"owner_id": "owner-b"}
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_query_missing_namespace(self, provider: ChromaDBProvider) -> None:
        results = await provider.query(
            "mindlens-ghost", _hash_to_vector("x"), filters={"owner_id": "ghost"}
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_query_requires_owner_filter(self, provider: ChromaDBProvider) -> None:
        await _seed(provider)
        with pytest.raises(IndexServiceError):
            await provider.query(_NS, _hash_to_vector("x"), filters={"collection_id": "book-1"})

    @pytest.mark.asyncio
    async def test_delete_by_attachment_and_collection(self, provider: ChromaDBProvider) -> None:
        await _seed(provider)
        assert await provider.delete_by_attachment(_NS, "att-1") == 3
        assert await provider.delete_by_collection(_NS, "book-2") == 1
        assert await provider.count(_NS) == 0
        assert await provider.delete_by_attachment("mindlens-ghost", "att-1") == 0

    @pytest.mark.asyncio
    async def test_empty_upsert_is_noop(self, provider: ChromaDBProvider) -> None:
        assert await provider.upsert(_NS, [], []) == 0
        assert await provider.count(_NS) == 0

    @pytest.mark.asyncio
    async def test_client_failure_wrapped(self) -> None:
        client = MagicMock()
        client.list_collections.return_value = []
        client.get_or_create_collection.side_effect = RuntimeError("disk full")
        provider = ChromaDBProvider(client=client)
        with pytest.raises(IndexServiceError, match="disk full"):
            await provider.upsert(_NS, [make_chunk("text")], [_hash_to_vector("text")])

    def test_translate_filters(self) -> None:
        assert ChromaDBProvider._translate_filters({"owner_id": "u1"}) == {
            "owner_id": {"$eq": "u1"}
        }
        assert ChromaDBProvider._translate_filters(
            {"owner_id": "u1", "collection_id": "c1"}
        ) == {"$and": [{"collection_id": {"$eq": "c1"}}, {"owner_id": {"$eq": "u1"}}]}

    def test_is_available(self, provider: ChromaDBProvider) -> None:
        assert provider.is_available() is True
        assert provider.get_provider_name() == "chromadb"

"""Unit tests for the library and RAG models: lifecycle, namespaces, scopes."""

from __future__ import annotations

from datetime import datetime, timezone

import pydantic
import pytest

from mindlens.models.library import (
    Attachment,
    AttachmentMetadata,
    AttachmentStatus,
    Collection,
    SourceKind,
    transition_status,
)
from mindlens.models.rag import (
    AnswerEvent,
    AnswerEventType,
    QueryScope,
    RetrievedChunk,
    tenant_namespace,
)
from mindlens.utils.errors import InvalidStateTransitionError
from tests.conftest import make_chunk


def _attachment(status: AttachmentStatus = AttachmentStatus.PROCESSING, **overrides) -> Attachment:
    values = {
        "attachment_id": "att-1",
        "collection_id": "book-1",
        "owner_id": "owner-a",
        "source_kind": SourceKind.WEB_PAGE,
        "name": "Q3 report",
        "locator": "https://example.com/q3",
        "status": status,
    }
    values.update(overrides)
    return Attachment(**values)


# ======================================================================
# SourceKind / AttachmentStatus
# ======================================================================


class TestSourceKind:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("web_page", SourceKind.WEB_PAGE),
            ("website", SourceKind.WEB_PAGE),
            ("youtube", SourceKind.VIDEO),
            ("VIDEO", None),
            ("pdf", SourceKind.FILE),
            ("file", SourceKind.FILE),
        ],
    )
    def test_aliases(self, raw: str, expected: SourceKind | None) -> None:
        if expected is None:
            with pytest.raises(ValueError):
                SourceKind(raw)
        else:
            assert SourceKind(raw) is expected

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValueError):
            SourceKind("podcast")

    def test_requires_url(self) -> None:
        assert SourceKind.WEB_PAGE.requires_url
        assert SourceKind.VIDEO.requires_url
        assert not SourceKind.FILE.requires_url

    def test_terminal_statuses(self) -> None:
        assert not AttachmentStatus.PROCESSING.is_terminal
        assert AttachmentStatus.COMPLETED.is_terminal
        assert AttachmentStatus.FAILED.is_terminal


# ======================================================================
# Collection / Attachment validation
# ======================================================================


class TestCollectionModel:
    def test_defaults(self) -> None:
        collection = Collection(collection_id="c1", owner_id="o1", title="Research")
        assert collection.description == ""
        assert collection.is_private is True
        assert collection.created_at.tzinfo is not None

    def test_title_length_limits(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Collection(collection_id="c1", owner_id="o1", title="")
        with pytest.raises(pydantic.ValidationError):
            Collection(collection_id="c1", owner_id="o1", title="x" * 101)

    def test_description_limit(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Collection(collection_id="c1", owner_id="o1", title="t", description="d" * 501)

    def test_frozen(self) -> None:
        collection = Collection(collection_id="c1", owner_id="o1", title="Research")
        with pytest.raises(pydantic.ValidationError):
            collection.title = "Other"


class TestAttachmentModel:
    def test_new_attachment_is_processing(self) -> None:
        attachment = _attachment()
        assert attachment.status is AttachmentStatus.PROCESSING
        assert attachment.metadata == AttachmentMetadata()

    def test_name_limit(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            _attachment(name="n" * 201)

    def test_negative_file_size_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            _attachment(file_size=-1)


# ======================================================================
# transition_status
# ======================================================================


class TestTransitionStatus:
    _NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_processing_to_completed_stamps_completion(self) -> None:
        updated = transition_status(
            _attachment(),
            AttachmentStatus.COMPLETED,
            {"chunk_count": 4, "word_count": 3200},
            now=self._NOW,
        )
        assert updated.status is AttachmentStatus.COMPLETED
        assert updated.processing_completed_at == self._NOW
        assert updated.metadata.chunk_count == 4
        assert updated.metadata.word_count == 3200

    def test_processing_to_failed_records_error(self) -> None:
        updated = transition_status(
            _attachment(), AttachmentStatus.FAILED, {"error": "HTTP 404"}, now=self._NOW
        )
        assert updated.status is AttachmentStatus.FAILED
        assert updated.metadata.error == "HTTP 404"

    def test_rerun_clears_error_and_completion(self) -> None:
        failed = transition_status(_attachment(), AttachmentStatus.FAILED, {"error": "boom"})
        rerun = transition_status(failed, AttachmentStatus.PROCESSING, now=self._NOW)
        assert rerun.status is AttachmentStatus.PROCESSING
        assert rerun.metadata.error is None
        assert rerun.processing_started_at == self._NOW
        assert rerun.processing_completed_at is None
        assert rerun.attachment_id == failed.attachment_id

    def test_completed_to_processing_allowed(self) -> None:
        completed = transition_status(_attachment(), AttachmentStatus.COMPLETED)
        assert transition_status(completed, AttachmentStatus.PROCESSING).status is (
            AttachmentStatus.PROCESSING
        )

    @pytest.mark.parametrize(
        ("start", "target"),
        [
            (AttachmentStatus.COMPLETED, AttachmentStatus.FAILED),
            (AttachmentStatus.FAILED, AttachmentStatus.COMPLETED),
            (AttachmentStatus.COMPLETED, AttachmentStatus.COMPLETED),
        ],
    )
    def test_disallowed_transitions(
        self, start: AttachmentStatus, target: AttachmentStatus
    ) -> None:
        with pytest.raises(InvalidStateTransitionError):
            transition_status(_attachment(status=start), target)

    def test_original_is_unchanged(self) -> None:
        original = _attachment()
        transition_status(original, AttachmentStatus.COMPLETED)
        assert original.status is AttachmentStatus.PROCESSING


# ======================================================================
# tenant_namespace
# ======================================================================


class TestTenantNamespace:
    def test_simple_owner(self) -> None:
        assert tenant_namespace("user42") == "mindlens-user42"

    def test_custom_prefix(self) -> None:
        assert tenant_namespace("user42", prefix="acme") == "acme-user42"

    def test_unsafe_characters_replaced(self) -> None:
        assert tenant_namespace("a@b.com") == "mindlens-a_b_com"

    def test_distinct_owners_get_distinct_namespaces(self) -> None:
        assert tenant_namespace("owner-a") != tenant_namespace("owner-b")

    def test_long_owner_is_hashed_deterministically(self) -> None:
        owner = "x" * 200
        namespace = tenant_namespace(owner)
        assert len(namespace) <= 63
        assert namespace == tenant_namespace(owner)
        assert namespace.startswith("mindlens-")

    def test_trailing_unsafe_character_is_hashed(self) -> None:
        namespace = tenant_namespace("user@")
        assert namespace[-1].isalnum()

    def test_empty_owner_rejected(self) -> None:
        with pytest.raises(ValueError):
            tenant_namespace("")


# ======================================================================
# QueryScope / AnswerEvent / RetrievedChunk
# ======================================================================


class TestQueryScope:
    def test_single_collection(self) -> None:
        scope = QueryScope.collection("book-1")
        assert scope.is_single_collection
        assert scope.collection_id == "book-1"

    def test_all_collections(self) -> None:
        scope = QueryScope.all_collections()
        assert not scope.is_single_collection
        assert scope.collection_id is None

    def test_empty_collection_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            QueryScope.collection("")


class TestAnswerEvent:
    def test_factories(self) -> None:
        assert AnswerEvent.content("hi").type is AnswerEventType.CONTENT
        assert AnswerEvent.error("bad").data == "bad"
        done = AnswerEvent.done()
        assert done.type is AnswerEventType.DONE
        assert done.data == ""


class TestRetrievedChunk:
    def test_score_bounds(self) -> None:
        chunk = make_chunk("text")
        assert RetrievedChunk(chunk=chunk, similarity_score=0.5).similarity_score == 0.5
        with pytest.raises(pydantic.ValidationError):
            RetrievedChunk(chunk=chunk, similarity_score=1.5)

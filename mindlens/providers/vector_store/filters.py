"""Tenant filter checks shared by the vector-store providers."""

from __future__ import annotations

from typing import Any

from mindlens.utils.errors import IndexServiceError

# Fields a query filter may constrain.  Each maps to a ChunkMetadata field.
FILTERABLE_FIELDS: frozenset[str] = frozenset(
    {"owner_id", "collection_id", "attachment_id", "source_kind"}
)


def validate_tenant_filter(filters: dict[str, Any] | None, provider_name: str) -> dict[str, Any]:
    """Return *filters* if it is a usable tenant filter, else raise.

    A usable filter is non-empty, names only known fields, and always
    pins ``owner_id`` to a non-empty string.
    """
    if not filters:
        raise IndexServiceError(
            message="Refusing unfiltered query against a tenant namespace",
            provider_name=provider_name,
        )
    unknown = set(filters) - FILTERABLE_FIELDS
    if unknown:
        raise IndexServiceError(
            message=f"Unsupported filter fields: {sorted(unknown)}",
            provider_name=provider_name,
        )
    owner_id = filters.get("owner_id")
    if not isinstance(owner_id, str) or not owner_id:
        raise IndexServiceError(
            message="Query filter must include owner_id",
            provider_name=provider_name,
        )
    return filters

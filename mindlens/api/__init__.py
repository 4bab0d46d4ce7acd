"""MindLens API layer: routes, schemas, owner identity, and middleware."""

from mindlens.api.auth import (
    OwnerIdentity,
    get_owner_identity,
    issue_owner_token,
    verify_owner_token,
)
from mindlens.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from mindlens.api.routes import router
from mindlens.api.schemas import (
    AttachmentResponse,
    BookResponse,
    ErrorResponse,
    HealthResponse,
    QueryRequest,
)

__all__ = [
    "AttachmentResponse",
    "BookResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "OwnerIdentity",
    "QueryRequest",
    "RequestLoggingMiddleware",
    "configure_cors",
    "get_owner_identity",
    "issue_owner_token",
    "router",
    "verify_owner_token",
]

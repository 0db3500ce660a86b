"""Knowledge base API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    UserIdentityMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    ErrorResponse,
    HealthResponse,
    QueryRequest,
    UploadResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "UserIdentityMiddleware",
    "configure_cors",
    "router",
    "ErrorResponse",
    "HealthResponse",
    "QueryRequest",
    "UploadResponse",
]

"""Async client for the 1Password Connect API.

Requests flow through a circuit breaker, a retry loop with exponential backoff
and a typed error mapper before reaching the shared ``httpx.AsyncClient``.
"""

from onepassword_connect.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
)
from onepassword_connect.client import ConnectClient
from onepassword_connect.errors import (
    BadRequestError,
    ConnectApiError,
    ConnectError,
    ConnectTransportError,
    DeserializationError,
    ErrorEnvelope,
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    RequestCancelledError,
    UnauthorizedError,
)
from onepassword_connect.logging import configure_structlog
from onepassword_connect.models import (
    ApiRequest,
    File,
    FullItem,
    Item,
    ItemCategory,
    ItemField,
    PatchOp,
    PatchOperation,
    ServerHealth,
    Vault,
)
from onepassword_connect.pipeline import RequestPipeline
from onepassword_connect.retry import RetryBackoffPolicy
from onepassword_connect.settings import ConnectSettings

__all__ = [
    "ApiRequest",
    "BadRequestError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "ConnectApiError",
    "ConnectClient",
    "ConnectError",
    "ConnectSettings",
    "ConnectTransportError",
    "DeserializationError",
    "ErrorEnvelope",
    "ErrorKind",
    "File",
    "ForbiddenError",
    "FullItem",
    "Item",
    "ItemCategory",
    "ItemField",
    "NotFoundError",
    "PatchOp",
    "PatchOperation",
    "RequestCancelledError",
    "RequestPipeline",
    "RetryBackoffPolicy",
    "ServerHealth",
    "UnauthorizedError",
    "Vault",
    "configure_structlog",
]

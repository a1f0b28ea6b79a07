"""Error types and the terminal-failure mapper for onepassword_connect."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

UNKNOWN_REASON = "Unknown error"


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""


class ErrorKind(StrEnum):
    """Closed set of terminal HTTP failure kinds."""

    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    GENERIC = "generic"


_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
}


@dataclass(frozen=True)
class ErrorEnvelope:
    """Normalized terminal failure surfaced to callers.

    Attributes:
        http_status: HTTP status code observed from the server.
        kind: Error kind derived from ``http_status``.
        message: Server-provided message, or a synthesized one.
        raw_body: Response payload text, when the server sent one.
    """

    http_status: int
    kind: ErrorKind
    message: str
    raw_body: str | None = None


class ErrorResponse(BaseModel):
    """Structured ``{status, message}`` error document sent by the server."""

    model_config = ConfigDict(extra="ignore")

    status: int | None = None
    message: str

    @model_validator(mode="before")
    @classmethod
    def _lowercase_keys(cls, data: object) -> object:
        if isinstance(data, dict):
            return {str(key).lower(): value for key, value in data.items()}
        return data


class ConnectError(Exception):
    """Base exception for every failure raised by the client."""


class ConnectApiError(ConnectError):
    """Terminal HTTP failure; also the ``GENERIC`` error kind."""

    def __init__(self, envelope: ErrorEnvelope) -> None:
        """Initialize from a normalized error envelope.

        Args:
            envelope: Terminal failure details.
        """
        super().__init__(envelope.message)
        self.envelope = envelope

    @property
    def status_code(self) -> int:
        return self.envelope.http_status

    @property
    def message(self) -> str:
        return self.envelope.message

    @property
    def kind(self) -> ErrorKind:
        return self.envelope.kind


class BadRequestError(ConnectApiError):
    """Raised for HTTP 400."""


class UnauthorizedError(ConnectApiError):
    """Raised for HTTP 401; the token is missing or invalid."""


class ForbiddenError(ConnectApiError):
    """Raised for HTTP 403; the token lacks access to the resource."""


class NotFoundError(ConnectApiError):
    """Raised for HTTP 404."""


class ConnectTransportError(ConnectError, TransientError):
    """Raised when the server stays unreachable after all retries."""

    def __init__(self, message: str, *, attempts: int | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts


class DeserializationError(ConnectError):
    """Raised when a successful response does not match the expected shape."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        target: str | None = None,
    ) -> None:
        """Initialize decode-error metadata.

        Args:
            message: Human-readable error message.
            http_status: HTTP status of the response that failed to decode.
            target: Name of the type the payload was decoded into.
        """
        super().__init__(message)
        self.http_status = http_status
        self.target = target


class RequestCancelledError(ConnectError):
    """Raised when the caller's stop event interrupts an operation."""


_ERROR_TYPES: dict[ErrorKind, type[ConnectApiError]] = {
    ErrorKind.BAD_REQUEST: BadRequestError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.GENERIC: ConnectApiError,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status to its error kind; unknown codes are ``GENERIC``."""
    return _STATUS_KINDS.get(status_code, ErrorKind.GENERIC)


def synthesize_message(status_code: int, reason_phrase: str | None) -> str:
    return f"HTTP {status_code}: {reason_phrase or UNKNOWN_REASON}"


def parse_error_message(body: str | None) -> str | None:
    """Return the ``message`` of a structured error body, if there is one."""
    if not body:
        return None
    try:
        document = ErrorResponse.model_validate(json.loads(body))
    except (ValueError, ValidationError):
        return None
    return document.message


def build_envelope(
    status_code: int,
    body: str | None,
    reason_phrase: str | None = None,
) -> ErrorEnvelope:
    """Build the error envelope for a terminal HTTP failure."""
    message = parse_error_message(body)
    if message is None:
        message = synthesize_message(status_code, reason_phrase)
    return ErrorEnvelope(
        http_status=status_code,
        kind=kind_for_status(status_code),
        message=message,
        raw_body=body or None,
    )


def error_from_envelope(envelope: ErrorEnvelope) -> ConnectApiError:
    return _ERROR_TYPES[envelope.kind](envelope)


def map_error(
    status_code: int,
    body: str | None,
    reason_phrase: str | None = None,
) -> ConnectApiError:
    """Convert a terminal HTTP failure into its typed exception."""
    return error_from_envelope(build_envelope(status_code, body, reason_phrase))

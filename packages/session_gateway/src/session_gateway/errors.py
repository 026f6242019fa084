"""
Gateway Errors

Every failure that leaves the core carries a stable ErrorKind so the HTTP
layer (and any other caller) can branch on it without parsing messages.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-checkable error kinds."""

    BAD_REQUEST = "bad_request"
    ALREADY_ACTIVE = "already_active"
    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    SEND_FAILED = "send_failed"
    PEER_UNREGISTERED = "peer_unregistered"
    LOGOUT_FAILED = "logout_failed"
    AUTH_FAILURE = "auth_failure"
    TRANSPORT_DISCONNECTED = "transport_disconnected"
    TRANSPORT_FAILURE = "transport_failure"
    QR_TIMEOUT = "qr_timeout"
    PERSISTENCE_FAILURE = "persistence_failure"

    def __str__(self) -> str:
        return self.value


class GatewayError(Exception):
    """Base class for gateway errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT_FAILURE
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value}


class BadRequest(GatewayError):
    """Missing or malformed identifiers. Raised before any state mutation."""

    kind = ErrorKind.BAD_REQUEST
    status_code = 400


class AlreadyActive(GatewayError):
    """A live session already exists for the tenant."""

    kind = ErrorKind.ALREADY_ACTIVE
    status_code = 409


class NotFound(GatewayError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class NotReady(GatewayError):
    kind = ErrorKind.NOT_READY
    status_code = 409


class PersistenceFailure(GatewayError):
    kind = ErrorKind.PERSISTENCE_FAILURE
    status_code = 500


class TransportFailure(GatewayError):
    """
    Error raised by a transport adapter.

    Mirrors the provider error shape: optional provider code, raw details and
    whether retrying the same call could succeed.
    """

    kind = ErrorKind.TRANSPORT_FAILURE
    status_code = 502

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, details)
        self.code = code
        self.retryable = retryable


class SendFailed(TransportFailure):
    kind = ErrorKind.SEND_FAILED
    status_code = 500


class PeerUnregistered(SendFailed):
    """The destination number has no account on the messaging network."""

    kind = ErrorKind.PEER_UNREGISTERED
    status_code = 422


class LogoutFailed(TransportFailure):
    kind = ErrorKind.LOGOUT_FAILED
    status_code = 500


class AuthFailure(TransportFailure):
    kind = ErrorKind.AUTH_FAILURE


class TransportDisconnected(TransportFailure):
    kind = ErrorKind.TRANSPORT_DISCONNECTED


class QrTimeout(TransportFailure):
    """No QR code arrived within the initialize wait window."""

    kind = ErrorKind.QR_TIMEOUT
    status_code = 504

"""Classification of failed sync attempts into diagnostic kinds and codes."""

from enum import Enum
from typing import Optional
import httpx


class ErrorKind(str, Enum):
    """Closed set of sync failure kinds recorded as diagnostics."""

    NETWORK_OFFLINE = "NetworkOfflineError"
    TIMEOUT = "TimeoutError"
    BAD_REQUEST = "BadRequestError"
    UNAUTHORIZED = "UnauthorizedError"
    FORBIDDEN = "ForbiddenError"
    NOT_FOUND = "NotFoundError"
    SERVER = "ServerError"
    SYNC = "SyncError"


ERROR_CODES = {
    ErrorKind.NETWORK_OFFLINE: "SYNC_NET_001",
    ErrorKind.TIMEOUT: "SYNC_TMO_001",
    ErrorKind.BAD_REQUEST: "SYNC_REQ_400",
    ErrorKind.UNAUTHORIZED: "SYNC_AUT_401",
    ErrorKind.FORBIDDEN: "SYNC_FOR_403",
    ErrorKind.NOT_FOUND: "SYNC_NTF_404",
    ErrorKind.SERVER: "SYNC_SRV_500",
    ErrorKind.SYNC: "SYNC_ERR_001",
}

UNKNOWN_ERROR_CODE = "SYNC_UNK_999"

_STATUS_KINDS = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    500: ErrorKind.SERVER,
}

# Checked in order against the lowercased error message
_MESSAGE_SIGNATURES = (
    (ErrorKind.NETWORK_OFFLINE, ("network", "failed to fetch", "connection refused", "connecterror")),
    (ErrorKind.TIMEOUT, ("timeout", "timed out")),
    (ErrorKind.BAD_REQUEST, ("400", "bad request")),
    (ErrorKind.UNAUTHORIZED, ("401", "unauthorized")),
    (ErrorKind.FORBIDDEN, ("403", "forbidden")),
    (ErrorKind.NOT_FOUND, ("404", "not found")),
    (ErrorKind.SERVER, ("500", "internal server")),
)

_MESSAGES = {
    ErrorKind.NETWORK_OFFLINE: "Unable to reach the network. Check the internet connection.",
    ErrorKind.TIMEOUT: "The connection timed out. Try again.",
    ErrorKind.BAD_REQUEST: "The submitted data was rejected as invalid.",
    ErrorKind.UNAUTHORIZED: "Not authorized. Sign in again.",
    ErrorKind.FORBIDDEN: "Access denied. Contact an administrator.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.SERVER: "The server reported an error. Try again later.",
}


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def classify_sync_error(error: BaseException, online: bool = True) -> ErrorKind:
    """Map a failed gateway call to an error kind.

    Offline state wins over everything else. Typed transport errors and
    HTTP status codes are used when present; the message text is the
    fallback for unstructured errors.

    Args:
        error: The exception raised by the gateway call.
        online: Connectivity state at the time of the failure.

    Returns:
        The matching ErrorKind, ``ErrorKind.SYNC`` when nothing matches.
    """
    if not online:
        return ErrorKind.NETWORK_OFFLINE

    if isinstance(error, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorKind.NETWORK_OFFLINE

    status = _status_code(error)
    if status is not None:
        if status in _STATUS_KINDS:
            return _STATUS_KINDS[status]
        if status >= 500:
            return ErrorKind.SERVER

    message = str(error).lower()
    for kind, signatures in _MESSAGE_SIGNATURES:
        if any(signature in message for signature in signatures):
            return kind
    return ErrorKind.SYNC


def error_code_for(kind) -> str:
    """Stable short code for an error kind."""
    try:
        return ERROR_CODES[ErrorKind(kind)]
    except ValueError:
        return UNKNOWN_ERROR_CODE


def describe_sync_error(error: BaseException, kind: ErrorKind) -> str:
    """Human-readable diagnostic message for a failed sync."""
    if kind in _MESSAGES:
        return _MESSAGES[kind]
    return f"Sync failed: {str(error) or 'Unknown error'}"

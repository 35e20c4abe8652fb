from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed backend call."""

    VALIDATION = "validation"
    AUTH = "auth"
    AUTH_EXPIRED = "auth_expired"
    NETWORK = "network"
    SERVER = "server"


VALIDATION_FALLBACK = "An error occurred"
AUTH_FALLBACK = "Login failed. Please check your credentials."
AUTH_EXPIRED_FALLBACK = "Session expired. Please login again."
NETWORK_FALLBACK = "Network error. Please check your connection."
SERVER_FALLBACK = "An unexpected error occurred"


class ApiError(Exception):
    """Base exception for all classified API failures.

    ``message`` is always safe to show to the user.
    """

    kind: ErrorKind = ErrorKind.SERVER
    fallback_message: str = SERVER_FALLBACK

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.fallback_message
        self.status_code = status_code
        super().__init__(self.message)


class ApiValidationError(ApiError):
    """Raised when the backend rejects the request (4xx other than 401)."""

    kind = ErrorKind.VALIDATION
    fallback_message = VALIDATION_FALLBACK


class AuthError(ApiError):
    """Raised when login credentials are rejected."""

    kind = ErrorKind.AUTH
    fallback_message = AUTH_FALLBACK


class AuthExpiredError(ApiError):
    """Raised when an authenticated call reports 401."""

    kind = ErrorKind.AUTH_EXPIRED
    fallback_message = AUTH_EXPIRED_FALLBACK


class NetworkError(ApiError):
    """Raised when no response reached the client."""

    kind = ErrorKind.NETWORK
    fallback_message = NETWORK_FALLBACK


class ServerError(ApiError):
    """Raised on 5xx responses or malformed response bodies."""

    kind = ErrorKind.SERVER
    fallback_message = SERVER_FALLBACK


class MalformedResponseError(Exception):
    """Raised by the response validator when a payload has the wrong shape."""

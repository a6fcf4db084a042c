"""
Stitch Client SDK Error Classes

Every error raised by the SDK is a StitchError tagged with an ErrorKind,
so callers can branch on ``error.kind`` instead of class identity.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import httpx


# Error code the server uses for an access token it no longer accepts
ERR_INVALID_SESSION = "InvalidSession"
ERR_AUTH_PROVIDER_NOT_FOUND = "AuthProviderNotFound"


class ErrorKind(str, Enum):
    """Kinds of failures surfaced by the SDK."""
    AUTH_REQUIRED = "AUTH_REQUIRED"
    SERVER = "SERVER"
    TRANSPORT = "TRANSPORT"
    INVALID_SESSION = "INVALID_SESSION"
    CONFIG = "CONFIG"
    NETWORK = "NETWORK"


class StitchError(Exception):
    """Base error class for the Stitch Client SDK."""

    kind: ErrorKind = ErrorKind.SERVER

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        response: Optional[httpx.Response] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.response = response
        self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status of the response that caused the error, if any."""
        return self.response.status_code if self.response is not None else None

    @classmethod
    def from_api_response(
        cls, body: Dict[str, Any], response: Optional[httpx.Response] = None
    ) -> "StitchError":
        """Create the matching error from a ``{"error", "errorCode"}`` body."""
        message = body.get("error") or ""
        code = body.get("errorCode")
        if code == ERR_INVALID_SESSION:
            return InvalidSessionError(message, response)
        return cls(message, code, response)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "name": self.__class__.__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class AuthRequiredError(StitchError):
    """An authenticated call was attempted without a session."""

    kind = ErrorKind.AUTH_REQUIRED

    def __init__(self, message: str = "Must auth first"):
        super().__init__(message)


class InvalidSessionError(StitchError):
    """The server rejected the presented access token."""

    kind = ErrorKind.INVALID_SESSION

    def __init__(self, message: str = "invalid session", response: Optional[httpx.Response] = None):
        super().__init__(message, ERR_INVALID_SESSION, response)


class TransportError(StitchError):
    """Non-2xx response without a JSON error body."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, response: Optional[httpx.Response] = None):
        super().__init__(message, None, response)


class NetworkError(StitchError):
    """Network error (connection issues, timeouts)."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NETWORK_ERROR")
        self.details = details or {}


class ConfigurationError(StitchError, TypeError):
    """Invalid client configuration or call options, raised before any I/O."""

    kind = ErrorKind.CONFIG

    def __init__(self, message: str, code: str = "CONFIGURATION_ERROR"):
        super().__init__(message, code)


class AuthProviderNotFoundError(ConfigurationError):
    """Authentication was requested with an unknown provider name."""

    def __init__(self, provider: str):
        super().__init__(f"auth provider not found: {provider!r}", ERR_AUTH_PROVIDER_NOT_FOUND)
        self.provider = provider


def is_stitch_error(error: Any) -> bool:
    """Check if error is a StitchError."""
    return isinstance(error, StitchError)


def is_invalid_session(error: Any) -> bool:
    """Check if error means the session must be refreshed or re-established."""
    return isinstance(error, StitchError) and error.kind is ErrorKind.INVALID_SESSION

"""
Stitch Client Python SDK

A Python client for the Stitch backend-as-a-service API with sync and async
clients, persisted sessions, transparent access token refresh and
extended-JSON pipelines.
"""

from .client import StitchClient, StitchAsyncClient, create_stitch_client, create_async_stitch_client
from .auth import AuthManager, AuthState, parse_redirect_fragment
from .types import (
    StitchConfig,
    TokenStorage,
    DeviceInfo,
    Session,
    PipelineStage,
    RedirectResult,
)
from .errors import (
    ErrorKind,
    StitchError,
    AuthRequiredError,
    InvalidSessionError,
    TransportError,
    NetworkError,
    ConfigurationError,
    AuthProviderNotFoundError,
    is_stitch_error,
    is_invalid_session,
)
from .storage import MemoryStorage, FileStorage, create_storage
from .version import __version__

__all__ = [
    # Clients
    "StitchClient",
    "StitchAsyncClient",
    "create_stitch_client",
    "create_async_stitch_client",
    # Auth
    "AuthManager",
    "AuthState",
    "parse_redirect_fragment",
    # Types
    "StitchConfig",
    "TokenStorage",
    "DeviceInfo",
    "Session",
    "PipelineStage",
    "RedirectResult",
    # Errors
    "ErrorKind",
    "StitchError",
    "AuthRequiredError",
    "InvalidSessionError",
    "TransportError",
    "NetworkError",
    "ConfigurationError",
    "AuthProviderNotFoundError",
    "is_stitch_error",
    "is_invalid_session",
    # Storage
    "MemoryStorage",
    "FileStorage",
    "create_storage",
    "__version__",
]

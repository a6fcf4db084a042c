"""
Stitch Client SDK Type Definitions

Configuration, session and pipeline types shared by the sync and async clients.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable
from urllib.parse import urlparse


DEFAULT_STITCH_SERVER_URL = "https://stitch.mongodb.com"
JSONTYPE = "application/json"


def is_valid_base_url(url: str) -> bool:
    """Validate that a base URL is an absolute http(s) URL."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@runtime_checkable
class TokenStorage(Protocol):
    """Key/value storage interface for custom implementations."""

    def get(self, key: str) -> Optional[str]:
        """Get a stored value."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value."""
        ...

    def remove(self, key: str) -> None:
        """Remove a value."""
        ...

    def clear(self) -> None:
        """Remove all values."""
        ...


@dataclass
class StitchConfig:
    """SDK configuration options."""

    # Client app ID; when unset the client talks to the admin API
    app_id: Optional[str] = None
    # Server base URL (default: https://stitch.mongodb.com)
    base_url: str = DEFAULT_STITCH_SERVER_URL
    # Request timeout in seconds (default: 30)
    timeout: float = 30.0
    # Refresh the access token when it expires within this many seconds (default: 60)
    refresh_threshold: int = 60
    # Custom storage for the session (default: None, uses MemoryStorage)
    storage: Optional[TokenStorage] = None
    # Version of the calling application, reported in device info
    app_version: Optional[str] = None
    # Enable debug logging (default: False)
    debug: bool = False
    # Custom headers to include in requests
    headers: Optional[Dict[str, str]] = None

    @property
    def app_url(self) -> str:
        base = self.base_url.rstrip("/")
        if self.app_id:
            return f"{base}/api/client/v1.0/app/{self.app_id}"
        return f"{base}/api/admin/v1.0"

    @property
    def auth_url(self) -> str:
        return f"{self.app_url}/auth"


@dataclass
class DeviceInfo:
    """Client-identifying metadata sent with every authentication request."""

    app_id: Optional[str]
    app_version: Optional[str]
    platform: str
    platform_version: str
    sdk_version: str
    device_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        result: Dict[str, Any] = {
            "appId": self.app_id or "",
            "appVersion": self.app_version or "",
            "platform": self.platform,
            "platformVersion": self.platform_version,
            "sdkVersion": self.sdk_version,
        }
        if self.device_id:
            result["deviceId"] = self.device_id
        return result


@dataclass
class Session:
    """Session tokens and identity."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user_id: Optional[str] = None
    device_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        """Create from an auth response body."""
        return cls(
            access_token=data.get("accessToken"),
            refresh_token=data.get("refreshToken"),
            user_id=data.get("userId"),
            device_id=data.get("deviceId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.access_token is not None:
            result["accessToken"] = self.access_token
        if self.refresh_token is not None:
            result["refreshToken"] = self.refresh_token
        if self.user_id is not None:
            result["userId"] = self.user_id
        if self.device_id is not None:
            result["deviceId"] = self.device_id
        return result


@dataclass
class PipelineStage:
    """One operation within a pipeline."""

    action: str
    args: Dict[str, Any] = field(default_factory=dict)
    service: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        result: Dict[str, Any] = {}
        if self.service is not None:
            result["service"] = self.service
        result["action"] = self.action
        result["args"] = self.args
        return result


Stage = Union[PipelineStage, Mapping[str, Any]]


def stages_to_list(stages: List[Stage]) -> List[Any]:
    """Normalize a pipeline into plain mappings for encoding."""
    return [s.to_dict() if isinstance(s, PipelineStage) else s for s in stages]


@dataclass
class RedirectResult:
    """Outcome of parsing an OAuth redirect fragment."""

    found: bool = False
    state_valid: bool = False
    last_error: Optional[str] = None
    ua: Optional[Session] = None

"""
Stitch Client SDK Auth Manager

Owns the session (access token, refresh token, user id, device id), builds
the login requests for each auth provider, inspects access token expiry and
tracks impersonation. It performs no I/O itself: the sync and async clients
send the requests it describes and hand the results back.
"""

import base64
import json
import logging
import platform
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode

import jwt

from .errors import AuthProviderNotFoundError, AuthRequiredError, ConfigurationError
from .types import DeviceInfo, RedirectResult, Session, TokenStorage
from .storage import MemoryStorage
from .version import __version__


logger = logging.getLogger("stitch_client")

ACCESS_TOKEN_KEY = "_stitch_at"
REFRESH_TOKEN_KEY = "_stitch_rt"
USER_ID_KEY = "_stitch_uid"
DEVICE_ID_KEY = "_stitch_did"
STATE_KEY = "_stitch_state"
IMPERSONATION_ACTIVE_KEY = "_stitch_impers_active"
IMPERSONATION_USER_KEY = "_stitch_impers_user"
IMPERSONATION_REAL_USER_AUTH_KEY = "_stitch_impers_real_ua"

# Redirect fragment keys
REDIRECT_STATE_KEY = "_stitch_state"
REDIRECT_ERROR_KEY = "_stitch_error"
REDIRECT_UA_KEY = "_stitch_ua"

CredentialsType = Union[None, str, Mapping[str, Any]]


class AuthState(str, Enum):
    """Session states of the auth manager."""
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"
    IMPERSONATING = "impersonating"


@dataclass
class AuthRequest:
    """An HTTP request against the auth endpoints, relative to the app URL."""

    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    query_params: Optional[Dict[str, str]] = None


def encode_device(device: DeviceInfo) -> str:
    """Base64 JSON form of device info used in query strings."""
    raw = json.dumps(device.to_dict(), separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


class AuthProvider(ABC):
    """Builds the login request for one kind of credentials."""

    name: str = ""

    @abstractmethod
    def login_request(self, credentials: Any, device: DeviceInfo) -> AuthRequest:
        ...


class AnonProvider(AuthProvider):
    """Anonymous login, no credentials."""

    name = "anon"

    def login_request(self, credentials: Any, device: DeviceInfo) -> AuthRequest:
        return AuthRequest(
            "GET",
            "/auth/anon/user",
            query_params={"device": encode_device(device)},
        )


class UserPassProvider(AuthProvider):
    """Username/password login."""

    name = "userpass"

    def login_request(self, credentials: Any, device: DeviceInfo) -> AuthRequest:
        if not isinstance(credentials, Mapping) or "username" not in credentials:
            raise ConfigurationError("userpass credentials must be a mapping with 'username' and 'password'")
        return AuthRequest(
            "POST",
            "/auth/local/userpass",
            body={
                "username": credentials["username"],
                "password": credentials.get("password"),
                "options": {"device": device.to_dict()},
            },
        )


class ApiKeyProvider(AuthProvider):
    """API key login. Credentials are the key itself or ``{"key": ...}``."""

    name = "apiKey"

    def login_request(self, credentials: Any, device: DeviceInfo) -> AuthRequest:
        key = credentials.get("key") if isinstance(credentials, Mapping) else credentials
        if not isinstance(key, str) or not key:
            raise ConfigurationError("apiKey credentials must be a non-empty key")
        return AuthRequest(
            "POST",
            "/auth/api/key",
            body={"key": key, "options": {"device": device.to_dict()}},
        )


class OAuthProvider(AuthProvider):
    """OAuth2 login, completed through a browser redirect."""

    def __init__(self, name: str) -> None:
        self.name = name

    def login_request(self, credentials: Any, device: DeviceInfo) -> AuthRequest:
        raise ConfigurationError(
            f"{self.name} is an OAuth provider; use get_oauth_login_url() and handle_redirect()"
        )

    def login_url(self, auth_url: str, redirect_url: str, state: str, device: DeviceInfo) -> str:
        query = urlencode({
            "redirect": redirect_url,
            "state": state,
            "device": encode_device(device),
        })
        return f"{auth_url}/oauth2/{self.name}?{query}"


PROVIDERS: Dict[str, AuthProvider] = {
    p.name: p
    for p in (
        AnonProvider(),
        UserPassProvider(),
        ApiKeyProvider(),
        OAuthProvider("google"),
        OAuthProvider("facebook"),
    )
}


def token_expires_at(token: Optional[str]) -> Optional[float]:
    """Return the ``exp`` claim of a JWT without verifying its signature."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def parse_redirect_fragment(fragment: str, our_state: Optional[str]) -> RedirectResult:
    """
    Parse the URL fragment the server redirects to after an OAuth login.

    Args:
        fragment: Fragment string, with or without the leading ``#``
        our_state: State value generated when the login URL was built

    Returns:
        RedirectResult with ``found`` set when any Stitch key was present
    """
    result = RedirectResult()
    for key, value in parse_qsl(fragment.lstrip("#"), keep_blank_values=True):
        if key == REDIRECT_UA_KEY:
            parts = value.split("$")
            if len(parts) != 4:
                result.last_error = f"invalid user auth data provided: {value}"
                continue
            access_token, refresh_token, user_id, device_id = parts
            result.ua = Session(access_token, refresh_token, user_id, device_id)
            result.found = True
        elif key == REDIRECT_STATE_KEY:
            result.found = True
            result.state_valid = our_state is not None and value == our_state
        elif key == REDIRECT_ERROR_KEY:
            result.last_error = value
            result.found = True
    return result


class AuthManager:
    """
    Session state machine shared by the sync and async clients.

    State is read from and written through to the token storage, so a
    session survives client restarts when the storage is persistent.
    """

    def __init__(
        self,
        auth_url: str,
        storage: Optional[TokenStorage] = None,
        app_id: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> None:
        self.auth_url = auth_url
        self.storage = storage if storage is not None else MemoryStorage()
        self._app_id = app_id
        self._app_version = app_version
        self._error: Optional[str] = None

    # =========================================================================
    # Providers
    # =========================================================================

    def provider(self, name: str) -> AuthProvider:
        """Look up an auth provider by name."""
        try:
            return PROVIDERS[name]
        except KeyError:
            raise AuthProviderNotFoundError(name) from None

    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            app_id=self._app_id,
            app_version=self._app_version,
            platform="python",
            platform_version=platform.python_version(),
            sdk_version=__version__,
            device_id=self.get_device_id(),
        )

    def login_request(self, provider_name: str, credentials: Any = None) -> AuthRequest:
        """Build the login request; fails before any I/O for unknown providers."""
        return self.provider(provider_name).login_request(credentials, self.device_info())

    def get_oauth_login_url(self, provider_name: str, redirect_url: str) -> str:
        """Build the OAuth login URL and remember the state it carries."""
        provider = self.provider(provider_name)
        if not isinstance(provider, OAuthProvider):
            raise ConfigurationError(f"{provider_name} is not an OAuth provider")
        state = secrets.token_urlsafe(32)
        self.storage.set(STATE_KEY, state)
        return provider.login_url(self.auth_url, redirect_url, state, self.device_info())

    def handle_redirect(self, fragment: str) -> RedirectResult:
        """Apply an OAuth redirect fragment to the session."""
        result = parse_redirect_fragment(fragment, self.storage.get(STATE_KEY))
        if not result.found:
            return result

        self.storage.remove(STATE_KEY)
        if result.last_error:
            logger.warning("OAuth redirect carried an error: %s", result.last_error)
            self._error = result.last_error
            return result
        if not result.state_valid:
            self._error = "StateValidationError"
            return result
        if result.ua is not None:
            self._error = None
            self.set_session(result.ua)
        return result

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def state(self) -> AuthState:
        if self.is_impersonating_user():
            return AuthState.IMPERSONATING
        if self.get_access_token() or self.authed_id():
            return AuthState.LOGGED_IN
        return AuthState.LOGGED_OUT

    def get(self) -> Optional[Dict[str, Any]]:
        """Current session as a mapping, or None when logged out."""
        if self.state is AuthState.LOGGED_OUT:
            return None
        return Session(
            access_token=self.get_access_token(),
            user_id=self.authed_id(),
            device_id=self.get_device_id(),
        ).to_dict()

    def error(self) -> Optional[str]:
        """Last error reported by an OAuth redirect."""
        return self._error

    def authed_id(self) -> Optional[str]:
        return self.storage.get(USER_ID_KEY)

    def get_access_token(self) -> Optional[str]:
        return self.storage.get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get(REFRESH_TOKEN_KEY)

    def get_device_id(self) -> Optional[str]:
        return self.storage.get(DEVICE_ID_KEY)

    def require_session(self) -> None:
        if self.state is AuthState.LOGGED_OUT:
            raise AuthRequiredError()

    def set_session(self, session: Session) -> None:
        """Replace the session with a login result; the device id is only ever added."""
        self._put(ACCESS_TOKEN_KEY, session.access_token)
        self._put(REFRESH_TOKEN_KEY, session.refresh_token)
        self._put(USER_ID_KEY, session.user_id)
        if session.device_id:
            self.storage.set(DEVICE_ID_KEY, session.device_id)

    def apply_login(self, data: Mapping[str, Any]) -> Session:
        """Store the session carried by a successful login response."""
        session = Session.from_dict(data)
        self.set_session(session)
        self._error = None
        return session

    def set_access_token(self, access_token: str) -> None:
        self.storage.set(ACCESS_TOKEN_KEY, access_token)

    def clear(self) -> None:
        """Drop the session; the device id is kept for later logins."""
        for key in (
            ACCESS_TOKEN_KEY,
            REFRESH_TOKEN_KEY,
            USER_ID_KEY,
            IMPERSONATION_ACTIVE_KEY,
            IMPERSONATION_USER_KEY,
            IMPERSONATION_REAL_USER_AUTH_KEY,
        ):
            self.storage.remove(key)

    def _put(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self.storage.remove(key)
        else:
            self.storage.set(key, value)

    def is_access_token_expired(self, threshold: float = 0) -> bool:
        """True when the access token expires within ``threshold`` seconds."""
        expires_at = token_expires_at(self.get_access_token())
        if expires_at is None:
            return False
        return expires_at <= time.time() + threshold

    # =========================================================================
    # Impersonation
    # =========================================================================

    def is_impersonating_user(self) -> bool:
        return self.storage.get(IMPERSONATION_ACTIVE_KEY) == "true"

    def impersonated_user_id(self) -> Optional[str]:
        return self.storage.get(IMPERSONATION_USER_KEY)

    def impersonation_request(self, user_id: Optional[str] = None) -> AuthRequest:
        user_id = user_id or self.impersonated_user_id()
        if not user_id:
            raise ConfigurationError("no user to impersonate")
        return AuthRequest("POST", f"/admin/users/{user_id}/impersonate")

    def begin_impersonation(self, user_id: str) -> None:
        """Snapshot the real session before swapping in the impersonated one."""
        self.require_session()
        if self.is_impersonating_user():
            raise ConfigurationError("Already impersonating a user", "AlreadyImpersonating")

        real = Session(access_token=self.get_access_token(), user_id=self.authed_id())
        self.storage.set(IMPERSONATION_REAL_USER_AUTH_KEY, json.dumps(real.to_dict()))
        self.storage.set(IMPERSONATION_USER_KEY, user_id)
        self.storage.set(IMPERSONATION_ACTIVE_KEY, "true")

    def apply_impersonation(self, data: Mapping[str, Any]) -> None:
        """Swap in the user-scoped token; the admin refresh token stays."""
        session = Session.from_dict(data)
        self._put(ACCESS_TOKEN_KEY, session.access_token)
        self._put(USER_ID_KEY, session.user_id or self.impersonated_user_id())

    def abort_impersonation(self) -> None:
        """Undo begin_impersonation() after the token fetch failed."""
        self._restore_real_session()

    def stop_impersonation(self) -> None:
        if not self.is_impersonating_user():
            raise ConfigurationError("Not impersonating a user", "NotImpersonating")
        self._restore_real_session()

    def _restore_real_session(self) -> None:
        raw = self.storage.get(IMPERSONATION_REAL_USER_AUTH_KEY)
        if raw is not None:
            real = Session.from_dict(json.loads(raw))
            self._put(ACCESS_TOKEN_KEY, real.access_token)
            self._put(USER_ID_KEY, real.user_id)
        self.storage.remove(IMPERSONATION_ACTIVE_KEY)
        self.storage.remove(IMPERSONATION_USER_KEY)
        self.storage.remove(IMPERSONATION_REAL_USER_AUTH_KEY)



"""
Stitch Client SDK Client

Main client classes for the Stitch backend-as-a-service API.
Provides both synchronous and asynchronous clients that log users in,
keep their session fresh and execute pipelines.

An authenticated request that fails with an invalid session is retried
exactly once, after exchanging the refresh token for a new access token.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Iterable, Optional, Union

import httpx

from .auth import AuthManager, AuthState, CredentialsType
from .errors import (
    AuthRequiredError,
    ConfigurationError,
    InvalidSessionError,
    NetworkError,
    StitchError,
    TransportError,
)
from .pipeline import Decoder, Encoder, decode_pipeline_response, encode_pipeline, resolve_codec
from .services import get_service
from .storage import MemoryStorage
from .types import JSONTYPE, RedirectResult, Session, Stage, StitchConfig, is_valid_base_url


logger = logging.getLogger("stitch_client")

Body = Union[None, str, bytes, Dict[str, Any]]


def _is_json(response: httpx.Response) -> bool:
    return JSONTYPE in response.headers.get("content-type", "")


def _raise_for_response(response: httpx.Response) -> None:
    """Convert a non-2xx response into the matching StitchError."""
    if response.is_success:
        return

    if _is_json(response):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            raise StitchError.from_api_response(body, response)

    raise TransportError(response.reason_phrase, response)


def _json_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        raise TransportError("Response body is not valid JSON", response) from None


def _body_kwargs(body: Body) -> Dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, (str, bytes)):
        return {"content": body}
    return {"json": body}


class _BaseClient:
    """Configuration, session accessors and request building shared by both clients."""

    def __init__(self, config: StitchConfig) -> None:
        self._validate_config(config)

        self._config = config
        self._app_url = config.app_url
        self._timeout = config.timeout
        self._refresh_threshold = config.refresh_threshold
        self._debug = config.debug
        self._custom_headers = config.headers or {}

        storage = config.storage if config.storage is not None else MemoryStorage()
        self.auth_manager = AuthManager(
            config.auth_url,
            storage,
            app_id=config.app_id,
            app_version=config.app_version,
        )

    def _validate_config(self, config: StitchConfig) -> None:
        """Validate configuration."""
        if not config.base_url or not is_valid_base_url(config.base_url):
            raise ConfigurationError(f"Invalid base_url: {config.base_url!r}")
        if config.refresh_threshold < 0:
            raise ConfigurationError("refresh_threshold must not be negative")
        if config.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

    def _log(self, message: str, *args: Any) -> None:
        """Log debug message."""
        if self._debug:
            logger.debug(f"[Stitch] {message}", *args)

    def _build_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "Accept": JSONTYPE,
            "Content-Type": JSONTYPE,
            **self._custom_headers,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _bearer_token(self, use_refresh_token: bool) -> Optional[str]:
        if use_refresh_token:
            refresh_token = self.auth_manager.get_refresh_token()
            if not refresh_token:
                raise AuthRequiredError("No refresh token available")
            return refresh_token
        return self.auth_manager.get_access_token()

    def _needs_proactive_refresh(self, use_refresh_token: bool) -> bool:
        return (
            not use_refresh_token
            and self.auth_manager.get_refresh_token() is not None
            and self.auth_manager.is_access_token_expired(self._refresh_threshold)
        )

    def _already_refreshed(self, stale_token: Optional[str]) -> bool:
        """True when another caller replaced the token while we waited for the lock."""
        current = self.auth_manager.get_access_token()
        return stale_token is not None and current is not None and current != stale_token

    def _store_refreshed_token(self, data: Dict[str, Any]) -> str:
        access_token = data.get("accessToken")
        if not access_token:
            raise StitchError("Refresh response did not include an access token")
        self.auth_manager.set_access_token(access_token)
        return access_token

    # =========================================================================
    # State Methods
    # =========================================================================

    @property
    def app_url(self) -> str:
        return self._app_url

    @property
    def state(self) -> AuthState:
        return self.auth_manager.state

    def authed_id(self) -> Optional[str]:
        """User id of the current session."""
        return self.auth_manager.authed_id()

    def auth(self) -> Optional[Dict[str, Any]]:
        """Current session, or None when logged out."""
        return self.auth_manager.get()

    def auth_error(self) -> Optional[str]:
        """Error reported by the last OAuth redirect."""
        return self.auth_manager.error()

    def is_authenticated(self) -> bool:
        return self.auth_manager.state is not AuthState.LOGGED_OUT

    def is_impersonating_user(self) -> bool:
        return self.auth_manager.is_impersonating_user()

    def get_oauth_login_url(self, provider: str, redirect_url: str) -> str:
        """URL to send the user's browser to for an OAuth login."""
        return self.auth_manager.get_oauth_login_url(provider, redirect_url)

    def handle_redirect(self, fragment: str) -> RedirectResult:
        """Complete an OAuth login from the fragment of the redirect URL."""
        result = self.auth_manager.handle_redirect(fragment)
        if result.ua is not None and result.state_valid:
            self._log("OAuth login completed for user %s", result.ua.user_id)
        return result

    def service(self, service_type: str, name: str) -> Any:
        """Helper for a named service, e.g. ``service("mongodb", "mdb1")``."""
        return get_service(self, service_type, name)


class StitchClient(_BaseClient):
    """
    Stitch Client - Synchronous SDK entry point.

    Provides authentication with transparent session refresh and
    pipeline execution.
    """

    def __init__(self, config: StitchConfig) -> None:
        """Initialize the Stitch client."""
        super().__init__(config)

        self._refresh_lock = threading.Lock()
        self._http_client = httpx.Client(timeout=self._timeout)

        self._log(f"StitchClient initialized (app_url={self._app_url})")

    # =========================================================================
    # Authentication Methods
    # =========================================================================

    def authenticate(self, provider: str, credentials: CredentialsType = None) -> Session:
        """
        Log in with an auth provider.

        Args:
            provider: Provider name (anon, userpass, apiKey)
            credentials: Provider credentials; a mapping for userpass, the key for apiKey

        Returns:
            Session stored for the logged in user

        Raises:
            AuthProviderNotFoundError: If the provider is unknown (no request is sent)
            StitchError: If the server rejects the credentials
        """
        request = self.auth_manager.login_request(provider, credentials)
        self._log(f"Login attempt with provider: {provider}")

        data = self._do(
            request.path,
            request.method,
            body=request.body,
            query_params=request.query_params,
        )
        session = self.auth_manager.apply_login(data)

        self._log("Login successful")
        return session

    def login(self, username: Optional[str] = None, password: Optional[str] = None) -> Session:
        """Log in with username/password, or anonymously when no username is given."""
        if username is None:
            return self.authenticate("anon")
        return self.authenticate("userpass", {"username": username, "password": password})

    def logout(self) -> None:
        """Log out; the local session is cleared even if the server call fails."""
        self._log("Logout")

        if self.auth_manager.state is AuthState.LOGGED_OUT:
            return
        if self.auth_manager.get_refresh_token() is None:
            # Nothing to revoke server side
            self.auth_manager.clear()
            return
        try:
            self._do_authed("/auth", "DELETE", refresh_on_failure=False, use_refresh_token=True)
        finally:
            self.auth_manager.clear()

    def refresh_token(self) -> str:
        """
        Exchange the refresh token for a new access token.

        Returns:
            The new access token
        """
        self.auth_manager.require_session()
        return self._refresh_access_token(None)

    def _refresh_access_token(self, stale_token: Optional[str]) -> str:
        with self._refresh_lock:
            if self._already_refreshed(stale_token):
                self._log("Access token already refreshed")
                return self.auth_manager.get_access_token()

            if self.auth_manager.is_impersonating_user():
                self._refresh_impersonation()
                return self.auth_manager.get_access_token()

            response = self._do_authed(
                "/auth/newAccessToken",
                "POST",
                refresh_on_failure=False,
                use_refresh_token=True,
            )
            access_token = self._store_refreshed_token(_json_body(response))
            self._log("Access token refreshed")
            return access_token

    # =========================================================================
    # Impersonation
    # =========================================================================

    def start_impersonation(self, user_id: str) -> None:
        """Act as another user using the current (admin) credentials."""
        self.auth_manager.begin_impersonation(user_id)
        try:
            self._refresh_impersonation()
        except StitchError:
            self.auth_manager.abort_impersonation()
            raise
        self._log(f"Impersonating user {user_id}")

    def stop_impersonation(self) -> None:
        """Return to the real session."""
        self.auth_manager.stop_impersonation()
        self._log("Impersonation stopped")

    def _refresh_impersonation(self) -> None:
        request = self.auth_manager.impersonation_request()
        response = self._do_authed(
            request.path,
            request.method,
            refresh_on_failure=False,
            use_refresh_token=True,
        )
        self.auth_manager.apply_impersonation(_json_body(response))

    # =========================================================================
    # Pipelines
    # =========================================================================

    def execute_pipeline(
        self,
        stages: Iterable[Stage],
        encoder: Optional[Encoder] = None,
        decoder: Optional[Decoder] = None,
    ) -> Any:
        """
        Execute a pipeline of stages as one request.

        Args:
            stages: Pipeline stages (PipelineStage or mappings)
            encoder: Optional callable turning the stages into the request body
            decoder: Optional callable turning the response text into data

        Returns:
            Decoded response; server warnings are under ``_stitch_metadata``
        """
        encode, decode = resolve_codec(encoder, decoder)
        body = encode_pipeline(stages, encode)
        response = self._do_authed("/pipeline", "POST", body=body)
        return decode_pipeline_response(response.content, decode)

    # =========================================================================
    # Transport
    # =========================================================================

    def _do(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Unauthenticated request; returns the parsed JSON body."""
        response = self._send(resource, method, body, query_params)
        _raise_for_response(response)
        return _json_body(response)

    def _do_authed(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
        refresh_on_failure: bool = True,
        use_refresh_token: bool = False,
    ) -> httpx.Response:
        """Authenticated request with one refresh-and-retry on an invalid session."""
        self.auth_manager.require_session()

        if self._needs_proactive_refresh(use_refresh_token):
            self._log("Access token expiring, refreshing before request")
            self._refresh_access_token(self.auth_manager.get_access_token())

        token = self._bearer_token(use_refresh_token)
        response = self._send(resource, method, body, query_params, token)
        try:
            _raise_for_response(response)
        except InvalidSessionError as error:
            if not refresh_on_failure:
                self.auth_manager.clear()
                raise

            self._log("Invalid session, refreshing access token")
            try:
                self._refresh_access_token(token)
            except StitchError as refresh_error:
                raise error from refresh_error

            return self._do_authed(
                resource,
                method,
                body=body,
                query_params=query_params,
                refresh_on_failure=False,
                use_refresh_token=use_refresh_token,
            )
        return response

    def _send(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self._app_url}{resource}"
        try:
            return self._http_client.request(
                method=method,
                url=url,
                headers=self._build_headers(token),
                params=query_params,
                **_body_kwargs(body),
            )
        except httpx.TimeoutException:
            raise NetworkError("Request timeout", {"timeout": self._timeout})
        except httpx.RequestError as e:
            raise NetworkError(str(e))

    def close(self) -> None:
        """Close the HTTP client."""
        self._http_client.close()

    def __enter__(self) -> "StitchClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


# =============================================================================
# Async Client
# =============================================================================

class StitchAsyncClient(_BaseClient):
    """
    Stitch Async Client - Asynchronous SDK entry point.

    Same behavior as StitchClient with coroutine methods, for asyncio
    applications.
    """

    def __init__(self, config: StitchConfig) -> None:
        """Initialize the async Stitch client."""
        super().__init__(config)

        self._refresh_lock = asyncio.Lock()

        # HTTP client (created lazily)
        self._http_client: Optional[httpx.AsyncClient] = None

        self._log(f"StitchAsyncClient initialized (app_url={self._app_url})")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    # =========================================================================
    # Authentication Methods
    # =========================================================================

    async def authenticate(self, provider: str, credentials: CredentialsType = None) -> Session:
        """Log in with an auth provider."""
        request = self.auth_manager.login_request(provider, credentials)
        self._log(f"Login attempt with provider: {provider}")

        data = await self._do(
            request.path,
            request.method,
            body=request.body,
            query_params=request.query_params,
        )
        session = self.auth_manager.apply_login(data)

        self._log("Login successful")
        return session

    async def login(self, username: Optional[str] = None, password: Optional[str] = None) -> Session:
        """Log in with username/password, or anonymously when no username is given."""
        if username is None:
            return await self.authenticate("anon")
        return await self.authenticate("userpass", {"username": username, "password": password})

    async def logout(self) -> None:
        """Log out; the local session is cleared even if the server call fails."""
        self._log("Logout")

        if self.auth_manager.state is AuthState.LOGGED_OUT:
            return
        if self.auth_manager.get_refresh_token() is None:
            # Nothing to revoke server side
            self.auth_manager.clear()
            return
        try:
            await self._do_authed("/auth", "DELETE", refresh_on_failure=False, use_refresh_token=True)
        finally:
            self.auth_manager.clear()

    async def refresh_token(self) -> str:
        """Exchange the refresh token for a new access token."""
        self.auth_manager.require_session()
        return await self._refresh_access_token(None)

    async def _refresh_access_token(self, stale_token: Optional[str]) -> str:
        async with self._refresh_lock:
            if self._already_refreshed(stale_token):
                self._log("Access token already refreshed")
                return self.auth_manager.get_access_token()

            if self.auth_manager.is_impersonating_user():
                await self._refresh_impersonation()
                return self.auth_manager.get_access_token()

            response = await self._do_authed(
                "/auth/newAccessToken",
                "POST",
                refresh_on_failure=False,
                use_refresh_token=True,
            )
            access_token = self._store_refreshed_token(_json_body(response))
            self._log("Access token refreshed")
            return access_token

    # =========================================================================
    # Impersonation
    # =========================================================================

    async def start_impersonation(self, user_id: str) -> None:
        """Act as another user using the current (admin) credentials."""
        self.auth_manager.begin_impersonation(user_id)
        try:
            await self._refresh_impersonation()
        except StitchError:
            self.auth_manager.abort_impersonation()
            raise
        self._log(f"Impersonating user {user_id}")

    async def stop_impersonation(self) -> None:
        """Return to the real session."""
        self.auth_manager.stop_impersonation()
        self._log("Impersonation stopped")

    async def _refresh_impersonation(self) -> None:
        request = self.auth_manager.impersonation_request()
        response = await self._do_authed(
            request.path,
            request.method,
            refresh_on_failure=False,
            use_refresh_token=True,
        )
        self.auth_manager.apply_impersonation(_json_body(response))

    # =========================================================================
    # Pipelines
    # =========================================================================

    async def execute_pipeline(
        self,
        stages: Iterable[Stage],
        encoder: Optional[Encoder] = None,
        decoder: Optional[Decoder] = None,
    ) -> Any:
        """Execute a pipeline of stages as one request."""
        encode, decode = resolve_codec(encoder, decoder)
        body = encode_pipeline(stages, encode)
        response = await self._do_authed("/pipeline", "POST", body=body)
        return decode_pipeline_response(response.content, decode)

    # =========================================================================
    # Transport
    # =========================================================================

    async def _do(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Unauthenticated request; returns the parsed JSON body."""
        response = await self._send(resource, method, body, query_params)
        _raise_for_response(response)
        return _json_body(response)

    async def _do_authed(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
        refresh_on_failure: bool = True,
        use_refresh_token: bool = False,
    ) -> httpx.Response:
        """Authenticated request with one refresh-and-retry on an invalid session."""
        self.auth_manager.require_session()

        if self._needs_proactive_refresh(use_refresh_token):
            self._log("Access token expiring, refreshing before request")
            await self._refresh_access_token(self.auth_manager.get_access_token())

        token = self._bearer_token(use_refresh_token)
        response = await self._send(resource, method, body, query_params, token)
        try:
            _raise_for_response(response)
        except InvalidSessionError as error:
            if not refresh_on_failure:
                self.auth_manager.clear()
                raise

            self._log("Invalid session, refreshing access token")
            try:
                await self._refresh_access_token(token)
            except StitchError as refresh_error:
                raise error from refresh_error

            return await self._do_authed(
                resource,
                method,
                body=body,
                query_params=query_params,
                refresh_on_failure=False,
                use_refresh_token=use_refresh_token,
            )
        return response

    async def _send(
        self,
        resource: str,
        method: str,
        body: Body = None,
        query_params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self._app_url}{resource}"
        try:
            client = self._get_client()
            return await client.request(
                method=method,
                url=url,
                headers=self._build_headers(token),
                params=query_params,
                **_body_kwargs(body),
            )
        except httpx.TimeoutException:
            raise NetworkError("Request timeout", {"timeout": self._timeout})
        except httpx.RequestError as e:
            raise NetworkError(str(e))

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "StitchAsyncClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# =============================================================================
# Factory Functions
# =============================================================================

def create_stitch_client(config: StitchConfig) -> StitchClient:
    """Create a new synchronous Stitch client."""
    return StitchClient(config)


def create_async_stitch_client(config: StitchConfig) -> StitchAsyncClient:
    """Create a new asynchronous Stitch client."""
    return StitchAsyncClient(config)

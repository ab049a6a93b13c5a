"""Authentication session manager.

Owns the session state machine for one public OAuth client:

    LOGGED_OUT --start_login()--> AUTHENTICATING --callback--> AUTHENTICATED
    AUTHENTICATING --error/cancel/state mismatch--> LOGGED_OUT
    AUTHENTICATED --expired--> REFRESHING_SILENTLY --> AUTHENTICATED | LOGGED_OUT
    any --logout()--> LOGGING_OUT --> LOGGED_OUT

Concurrency (single event loop):
- An asyncio.Lock guards the cached TokenSet and creation of the refresh task.
- At most one refresh exchange is in flight; concurrent callers of
  with_fresh_token() await the same task through asyncio.shield, so one
  caller being cancelled never cancels the refresh for the others.
- Credential store calls are synchronous, so the four slot writes of a
  TokenSet never interleave with another coroutine.
- logout() bumps a generation counter. A login or refresh that completes
  afterwards sees a stale generation and its tokens are discarded.
"""

from __future__ import annotations

__all__ = [
    "AuthSessionManager",
]

import asyncio
import secrets
from collections.abc import Callable
from typing import TYPE_CHECKING, Literal
from urllib.parse import parse_qs, urlencode, urlsplit

from pkce_session.constants import (
    DEFAULT_CREDENTIAL_NAMESPACE,
    DEFAULT_REFRESH_MARGIN_SECONDS,
    PKCE_CHALLENGE_METHOD,
)
from pkce_session.exceptions import (
    AuthError,
    CallbackError,
    ConfigurationError,
    ExchangeRejectedError,
    MalformedResponseError,
    NotAuthenticatedError,
    SessionExpiredError,
    StateMismatchError,
    StorageError,
    TransportFailureError,
    UserCancelledError,
)
from pkce_session.security.auth.pkce import PKCEContext, PKCEGenerator
from pkce_session.security.auth.token_exchange import TokenExchangeClient
from pkce_session.security.auth.token_set import (
    TokenSet,
    clear_token_set,
    load_id_token,
    load_token_set,
    save_token_set,
)
from pkce_session.session.state import SessionState, StatusListener, StatusSignal
from pkce_session.telemetry.system.system_logger import get_system_logger

if TYPE_CHECKING:
    import httpx

    from pkce_session.config import AppConfig, OIDCConfig
    from pkce_session.security.credential_store import SecureCredentialStore
    from pkce_session.session.broker import InteractiveAuthBroker
    from pkce_session.telemetry.audit.auth_logger import AuthLogger


def _consume_task_result(task: "asyncio.Task[TokenSet]") -> None:
    # Retrieve the exception so an unawaited failed refresh is not reported as lost
    if not task.cancelled():
        task.exception()


class AuthSessionManager:
    """Runs PKCE login, keeps tokens fresh and tears sessions down.

    Usage:
        manager = AuthSessionManager.from_config(config, broker=ConsoleAuthBroker())
        await manager.start_login()
        token = await manager.with_fresh_token()
        await manager.logout()
        await manager.close()

    Apps that receive the redirect out of band use the split API instead:
        url = manager.begin_login()
        ...  # open url, capture redirect
        await manager.complete_login(callback_url)
    """

    def __init__(
        self,
        config: "OIDCConfig",
        store: "SecureCredentialStore",
        *,
        exchange_client: TokenExchangeClient | None = None,
        broker: "InteractiveAuthBroker | None" = None,
        pkce_generator: PKCEGenerator | None = None,
        namespace: str = DEFAULT_CREDENTIAL_NAMESPACE,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        auth_logger: "AuthLogger | None" = None,
    ) -> None:
        """Initialize the manager and restore any stored session.

        Args:
            config: OIDC provider configuration.
            store: Secure credential store holding the TokenSet slots.
            exchange_client: Token endpoint client (created and owned if omitted).
            broker: Interactive browser broker (required for start_login and remote logout).
            pkce_generator: PKCE context source.
            namespace: Credential store namespace.
            refresh_margin_seconds: Tokens expiring within this window are refreshed first.
            auth_logger: Optional audit logger for auth events.

        Raises:
            StorageError: If the stored session cannot be read.
        """
        self._config = config
        self._store = store
        self._owns_exchange_client = exchange_client is None
        self._exchange = exchange_client or TokenExchangeClient(config)
        self._broker = broker
        self._pkce = pkce_generator or PKCEGenerator()
        self._namespace = namespace
        self._margin = refresh_margin_seconds
        # Lifetime of the cached token when it was received, None if restored
        self._token_lifetime: float | None = None
        self._auth_logger = auth_logger
        self._logger = get_system_logger()

        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[TokenSet] | None = None
        self._pending: PKCEContext | None = None
        self._generation = 0

        self._token_set = load_token_set(store, namespace)
        self._state = SessionState.AUTHENTICATED if self._token_set else SessionState.LOGGED_OUT
        self._signal = StatusSignal(self._state.is_authenticated)
        if self._token_set is not None:
            self._logger.info(
                {
                    "event": "session_restored",
                    "message": "Restored stored session",
                    "expires_at": self._token_set.expires_at.isoformat(),
                }
            )

    @classmethod
    def from_config(
        cls,
        config: "AppConfig",
        *,
        broker: "InteractiveAuthBroker | None" = None,
        store: "SecureCredentialStore | None" = None,
        http_client: "httpx.AsyncClient | None" = None,
        auth_logger: "AuthLogger | None" = None,
    ) -> "AuthSessionManager":
        """Build a manager from application configuration.

        The credential store backend and audit logger follow config unless
        given explicitly.
        """
        from pkce_session.config import get_auth_log_path
        from pkce_session.security.credential_store import create_credential_store
        from pkce_session.telemetry.audit.auth_logger import create_auth_logger

        session_config = config.session
        if store is None:
            store = create_credential_store(session_config.storage_backend)
        if auth_logger is None and config.logging.audit_enabled:
            auth_logger = create_auth_logger(get_auth_log_path(config))

        manager = cls(
            config.auth.oidc,
            store,
            exchange_client=TokenExchangeClient(
                config.auth.oidc,
                http_client=http_client,
                timeout_seconds=session_config.http_timeout_seconds,
            ),
            broker=broker,
            namespace=session_config.credential_namespace,
            refresh_margin_seconds=session_config.refresh_margin_seconds,
            auth_logger=auth_logger,
        )
        manager._owns_exchange_client = True
        return manager

    async def __aenter__(self) -> "AuthSessionManager":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the token endpoint client if this manager created it."""
        if self._owns_exchange_client:
            await self._exchange.aclose()

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._signal.value

    @property
    def token_set(self) -> TokenSet | None:
        """Cached TokenSet (may be expired). Use with_fresh_token() for requests."""
        return self._token_set

    @property
    def store(self) -> "SecureCredentialStore":
        return self._store

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call listener(bool) whenever the authenticated flag flips.

        Returns:
            Function that unsubscribes the listener.
        """
        return self._signal.subscribe(listener)

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        self._signal.set(state.is_authenticated)

    # =========================================================================
    # Login
    # =========================================================================

    def build_authorization_url(self, context: PKCEContext) -> str:
        """Authorization endpoint URL for one login attempt."""
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._config.scopes),
            "code_challenge": context.challenge,
            "code_challenge_method": PKCE_CHALLENGE_METHOD,
            "state": context.state,
        }
        if self._config.prompt:
            params["prompt"] = self._config.prompt
        return f"{self._config.authorization_url}?{urlencode(params)}"

    def begin_login(self) -> str:
        """Start a login attempt and return the authorization URL.

        A new attempt supersedes one that is still pending.

        Raises:
            AuthError: If already authenticated or a logout is in progress.
        """
        if self._state.is_authenticated:
            raise AuthError("Already authenticated; log out first")
        if self._state is SessionState.LOGGING_OUT:
            raise AuthError("Logout in progress")

        if self._pending is not None:
            self._generation += 1
            self._logger.info({"event": "login_superseded", "message": "Previous login attempt abandoned"})

        self._pending = self._pkce.generate()
        self._set_state(SessionState.AUTHENTICATING)
        if self._auth_logger:
            self._auth_logger.log_login_started()
        return self.build_authorization_url(self._pending)

    async def start_login(self) -> None:
        """Run the interactive login through the broker.

        No-op when already authenticated.

        Raises:
            ConfigurationError: No broker configured.
            UserCancelledError: User dismissed the login (or it was superseded).
            CallbackError: Provider redirected back with an error.
            StateMismatchError: Callback state does not match.
            ExchangeRejectedError, MalformedResponseError, TransportFailureError:
                Code exchange failed.
            StorageError: Tokens could not be persisted.
        """
        if self._state.is_authenticated:
            self._logger.info({"event": "already_authenticated", "message": "Already authenticated"})
            return
        if self._broker is None:
            raise ConfigurationError("An interactive broker is required to log in")

        url = self.begin_login()
        context = self._pending
        generation = self._generation
        assert context is not None

        try:
            callback_url = await self._broker.present(url, self._config.redirect_uri)
        except asyncio.CancelledError:
            self._abandon_login(generation, UserCancelledError("Login cancelled"))
            raise
        except AuthError as e:
            self._abandon_login(generation, e)
            raise
        except Exception as e:
            error = CallbackError(f"Browser session failed: {e}")
            self._abandon_login(generation, error)
            raise error from e

        await self._finish_login(context, generation, callback_url)

    async def complete_login(self, callback_url: str) -> None:
        """Finish the pending login with the redirect URL the browser reached.

        Raises:
            CallbackError: No login attempt is pending, or the provider returned an error.
            StateMismatchError, ExchangeRejectedError, MalformedResponseError,
            TransportFailureError, StorageError: As for start_login().
        """
        context = self._pending
        if context is None:
            raise CallbackError("No login attempt is in progress")
        await self._finish_login(context, self._generation, callback_url)

    def cancel_login(self) -> None:
        """Abandon the pending login attempt. Harmless when none is pending."""
        if self._pending is None:
            return
        self._generation += 1
        self._abandon_login(self._generation, UserCancelledError("Login cancelled"))

    def _abandon_login(self, generation: int, error: AuthError) -> None:
        """Return to LOGGED_OUT after a failed attempt, unless it was superseded."""
        if generation != self._generation and self._pending is not None:
            return
        self._pending = None
        if self._state is SessionState.AUTHENTICATING:
            self._set_state(SessionState.LOGGED_OUT)
        self._logger.warning(
            {
                "event": "login_failed",
                "message": f"Login failed: {error}",
                "error_type": type(error).__name__,
            }
        )
        if self._auth_logger:
            self._auth_logger.log_login_failed(error=error)

    def _parse_callback(self, callback_url: str, expected_state: str) -> str:
        """Validate the redirect and return the authorization code."""
        params = {key: values[0] for key, values in parse_qs(urlsplit(callback_url).query).items()}

        if "error" in params:
            raise CallbackError(
                f"Identity provider returned '{params['error']}'",
                error=params["error"],
                description=params.get("error_description"),
            )

        state = params.get("state")
        if state is None or not secrets.compare_digest(state.encode(), expected_state.encode()):
            raise StateMismatchError("Callback state does not match the login attempt")

        code = params.get("code")
        if not code:
            raise CallbackError("Callback URL carries no authorization code")
        return code

    async def _finish_login(self, context: PKCEContext, generation: int, callback_url: str) -> None:
        # The context is consumed by this callback whatever the outcome
        if self._pending is context:
            self._pending = None

        # A discarded verifier is never sent to the provider
        if generation != self._generation:
            self._logger.info({"event": "login_discarded", "message": "Callback for an abandoned login ignored"})
            raise UserCancelledError("Login was superseded")

        try:
            code = self._parse_callback(callback_url, context.state)
            token_set = await self._exchange.exchange_code(code, context.verifier)
        except asyncio.CancelledError:
            self._abandon_login(generation, UserCancelledError("Login cancelled"))
            raise
        except AuthError as e:
            self._abandon_login(generation, e)
            raise

        if generation != self._generation:
            self._logger.info({"event": "login_discarded", "message": "Login result discarded after logout"})
            raise UserCancelledError("Login was superseded")

        async with self._lock:
            try:
                save_token_set(self._store, self._namespace, token_set)
            except StorageError as e:
                self._discard_partial_write()
                self._abandon_login(generation, e)
                raise
            self._token_set = token_set
            self._token_lifetime = self._observe_lifetime(token_set)
            self._set_state(SessionState.AUTHENTICATED)

        self._logger.info(
            {
                "event": "login_succeeded",
                "message": "Authentication successful",
                "expires_at": token_set.expires_at.isoformat(),
            }
        )
        if self._auth_logger:
            self._auth_logger.log_login_succeeded(expires_at=token_set.expires_at)

    def _discard_partial_write(self) -> None:
        try:
            clear_token_set(self._store, self._namespace)
        except StorageError as e:
            self._logger.error(
                {
                    "event": "partial_credentials_not_cleared",
                    "message": f"Could not remove partially written credentials: {e}",
                }
            )

    # =========================================================================
    # Fresh tokens
    # =========================================================================

    async def with_fresh_token(self) -> str:
        """Return an access token valid for at least the refresh margin.

        Refreshes first when the cached token is about to expire. Concurrent
        callers share a single refresh exchange.

        Raises:
            NotAuthenticatedError: No session.
            SessionExpiredError: Refresh impossible; session cleared.
            ExchangeRejectedError, TransportFailureError, MalformedResponseError:
                Refresh failed without invalidating the session.
            StorageError: Refreshed tokens could not be persisted.
        """
        async with self._lock:
            token_set = self._token_set
            if token_set is None:
                raise NotAuthenticatedError("Not authenticated. Log in first.")
            if token_set.is_fresh(self._effective_margin()):
                return token_set.access_token

            task = self._refresh_task
            if task is None:
                task = asyncio.create_task(self._run_refresh(token_set, self._generation))
                task.add_done_callback(_consume_task_result)
                self._refresh_task = task
                self._set_state(SessionState.REFRESHING_SILENTLY)

        refreshed = await asyncio.shield(task)
        return refreshed.access_token

    def _effective_margin(self) -> float:
        """Refresh margin, capped at half the lifetime of the cached token.

        A provider issuing tokens shorter than the margin would otherwise
        force a refresh on every call.
        """
        if self._token_lifetime is None:
            return self._margin
        return min(self._margin, self._token_lifetime / 2)

    def _observe_lifetime(self, token_set: TokenSet) -> float:
        lifetime = token_set.seconds_until_expiry
        if lifetime <= self._margin:
            self._logger.warning(
                {
                    "event": "short_token_lifetime",
                    "message": "Access token lifetime is within the refresh margin; using half the lifetime",
                    "lifetime_seconds": round(lifetime, 1),
                    "refresh_margin_seconds": self._margin,
                }
            )
        return lifetime

    async def _run_refresh(self, current: TokenSet, generation: int) -> TokenSet:
        try:
            if not current.refresh_token:
                self._expire_session(generation, "NoRefreshToken", "No refresh token stored")
                raise SessionExpiredError("Session expired. Log in again.")

            try:
                refreshed = await self._exchange.refresh(current.refresh_token)
            except ExchangeRejectedError as e:
                if e.is_invalid_grant:
                    self._expire_session(generation, type(e).__name__, str(e))
                    raise SessionExpiredError("Session expired. Log in again.") from e
                self._refresh_failed(generation, e)
                raise
            except (TransportFailureError, MalformedResponseError) as e:
                self._refresh_failed(generation, e)
                raise

            if generation != self._generation:
                raise NotAuthenticatedError("Logged out while the token was being refreshed")

            if refreshed.id_token is None and current.id_token is not None:
                refreshed = refreshed.model_copy(update={"id_token": current.id_token})

            async with self._lock:
                self._token_set = refreshed
                self._token_lifetime = self._observe_lifetime(refreshed)
                self._set_state(SessionState.AUTHENTICATED)
                save_token_set(self._store, self._namespace, refreshed)

            self._logger.info(
                {
                    "event": "token_refreshed",
                    "message": "Access token refreshed",
                    "expires_at": refreshed.expires_at.isoformat(),
                }
            )
            if self._auth_logger:
                self._auth_logger.log_token_refreshed(expires_at=refreshed.expires_at)
            return refreshed
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None
            # Cancelled mid-exchange: the stored session is untouched
            if generation == self._generation and self._state is SessionState.REFRESHING_SILENTLY:
                self._set_state(SessionState.AUTHENTICATED)

    def _refresh_failed(self, generation: int, error: AuthError) -> None:
        """Non-terminal refresh failure: the stored session stays usable."""
        if generation == self._generation and self._state is SessionState.REFRESHING_SILENTLY:
            self._set_state(SessionState.AUTHENTICATED)
        self._logger.warning(
            {
                "event": "token_refresh_failed",
                "message": f"Token refresh failed: {error}",
                "error_type": type(error).__name__,
            }
        )
        if self._auth_logger:
            self._auth_logger.log_token_refresh_failed(
                error_type=type(error).__name__,
                error_message=str(error),
                terminal=False,
            )

    def _expire_session(self, generation: int, error_type: str, error_message: str) -> None:
        """Terminal refresh failure: clear all slots and drop to LOGGED_OUT."""
        self._logger.warning(
            {
                "event": "session_expired",
                "message": f"Refresh impossible, clearing session: {error_message}",
                "error_type": error_type,
            }
        )
        if self._auth_logger:
            self._auth_logger.log_token_refresh_failed(
                error_type=error_type,
                error_message=error_message,
                terminal=True,
            )
        if generation != self._generation:
            return
        self._generation += 1
        self._token_set = None
        try:
            clear_token_set(self._store, self._namespace)
        except StorageError as e:
            self._logger.error(
                {
                    "event": "credential_clear_failed",
                    "message": f"Failed to clear expired session: {e}",
                }
            )
        self._set_state(SessionState.LOGGED_OUT)

    # =========================================================================
    # Logout
    # =========================================================================

    def build_end_session_url(self, id_token: str) -> str:
        """End-session endpoint URL with id_token_hint and post-logout redirect."""
        params = {
            "id_token_hint": id_token,
            "post_logout_redirect_uri": self._config.logout_redirect_uri,
        }
        return f"{self._config.end_session_url}?{urlencode(params)}"

    async def logout(self, *, remote: bool = True) -> None:
        """End the session locally and, when possible, at the provider.

        Local credentials are always deleted, whatever happens remotely.
        Calling logout while logged out is harmless.

        Args:
            remote: Present the provider's end-session page (needs a stored id token).

        Raises:
            StorageError: Slots could not be deleted. The manager is LOGGED_OUT regardless.
        """
        if self._state is SessionState.LOGGING_OUT:
            self._logger.info({"event": "logout_in_progress", "message": "Logout already in progress"})
            return

        # Invalidate any in-flight login or refresh before suspending
        self._generation += 1
        self._pending = None
        self._refresh_task = None
        cached = self._token_set
        self._token_set = None
        self._set_state(SessionState.LOGGING_OUT)

        try:
            id_token = load_id_token(self._store, self._namespace)
        except StorageError as e:
            self._logger.warning({"event": "id_token_read_failed", "message": str(e)})
            id_token = cached.id_token if cached else None

        remote_logout: Literal["completed", "failed", "skipped"] = "skipped"
        storage_error: StorageError | None = None
        try:
            if remote and id_token and self._broker is not None:
                try:
                    await self._broker.present_end_session(self.build_end_session_url(id_token))
                    remote_logout = "completed"
                except Exception as e:
                    remote_logout = "failed"
                    self._logger.warning(
                        {
                            "event": "remote_logout_failed",
                            "message": f"Remote logout failed, clearing local session anyway: {e}",
                            "error_type": type(e).__name__,
                        }
                    )
        finally:
            try:
                clear_token_set(self._store, self._namespace)
            except StorageError as e:
                storage_error = e
            self._exchange.clear_cookies(self._config.provider_host)
            self._set_state(SessionState.LOGGED_OUT)

        if self._broker is not None:
            try:
                await self._broker.clear_site_data(self._config.provider_host)
            except Exception as e:
                self._logger.warning(
                    {
                        "event": "site_data_clear_failed",
                        "message": f"Could not clear browser data: {e}",
                        "error_type": type(e).__name__,
                    }
                )

        self._logger.info({"event": "logout", "message": "Logged out", "remote_logout": remote_logout})
        if self._auth_logger:
            self._auth_logger.log_logout(remote_logout=remote_logout)

        if storage_error is not None:
            self._logger.error(
                {
                    "event": "credential_clear_failed",
                    "message": f"Failed to delete stored credentials: {storage_error}",
                }
            )
            raise storage_error

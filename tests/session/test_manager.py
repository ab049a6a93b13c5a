"""Tests for AuthSessionManager login and token freshness.

Tests cover:
- Interactive login (authorization URL, state validation, exchange, persistence)
- Login failures (cancel, callback error, state mismatch, malformed response)
- with_fresh_token() margin handling and single-flight refresh
- Terminal and non-terminal refresh failures
- Status signal and restore at construction
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit
from unittest.mock import MagicMock

import pytest
from conftest import NAMESPACE, FakeBroker, InMemoryCredentialStore

from pkce_session.config import OIDCConfig
from pkce_session.constants import ACCESS_TOKEN_KEY, EXPIRES_AT_KEY, ID_TOKEN_KEY, REFRESH_TOKEN_KEY
from pkce_session.exceptions import (
    AuthError,
    CallbackError,
    ConfigurationError,
    ExchangeRejectedError,
    MalformedResponseError,
    NotAuthenticatedError,
    SessionExpiredError,
    StateMismatchError,
    TransportFailureError,
    UserCancelledError,
)
from pkce_session.security.auth.pkce import compute_code_challenge
from pkce_session.security.auth.token_exchange import TokenExchangeClient
from pkce_session.security.auth.token_set import TokenSet, load_token_set, save_token_set
from pkce_session.session.manager import AuthSessionManager
from pkce_session.session.state import SessionState


def _token_set(expires_in: float, suffix: str = "1", id_token: str | None = "id-1") -> TokenSet:
    return TokenSet(
        access_token=f"access-{suffix}",
        refresh_token=f"refresh-{suffix}",
        id_token=id_token,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )


@pytest.fixture
def exchange() -> MagicMock:
    """TokenExchangeClient mock (exchange_code/refresh are AsyncMocks)."""
    client = MagicMock(spec=TokenExchangeClient)
    client.exchange_code.return_value = _token_set(300, suffix="login", id_token="id-login")
    client.refresh.return_value = _token_set(300, suffix="new", id_token=None)
    return client


@pytest.fixture
def auth_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_manager(
    oidc_config: OIDCConfig,
    store: InMemoryCredentialStore,
    broker: FakeBroker,
    exchange: MagicMock,
    auth_logger: MagicMock,
):
    """Factory building a manager over the shared fakes."""

    def _make(**kwargs) -> AuthSessionManager:
        return AuthSessionManager(
            oidc_config,
            store,
            exchange_client=exchange,
            broker=broker,
            namespace=NAMESPACE,
            auth_logger=auth_logger,
            **kwargs,
        )

    return _make


@pytest.fixture
def manager(make_manager) -> AuthSessionManager:
    return make_manager()


def _authenticated(store: InMemoryCredentialStore, make_manager, expires_in: float) -> AuthSessionManager:
    save_token_set(store, NAMESPACE, _token_set(expires_in))
    return make_manager()


class _BrokerGate:
    """Events letting a test act while the broker's login page is open."""

    def __init__(self) -> None:
        self.presented = asyncio.Event()
        self.release = asyncio.Event()


def _gate_broker(broker: FakeBroker) -> _BrokerGate:
    """Make broker.present() wait for gate.release before answering."""
    gate = _BrokerGate()
    answer = broker.present

    async def gated_present(url: str, redirect_uri: str) -> str:
        gate.presented.set()
        await gate.release.wait()
        return await answer(url, redirect_uri)

    broker.present = gated_present  # type: ignore[method-assign]
    return gate


# ============================================================================
# Tests: Login
# ============================================================================


class TestLogin:
    """Tests for start_login() and the split begin/complete API."""

    @pytest.mark.asyncio
    async def test_successful_login_persists_all_slots(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given a valid callback, tokens are stored and state is AUTHENTICATED."""
        # Act
        await manager.start_login()

        # Assert
        assert manager.state is SessionState.AUTHENTICATED
        assert manager.is_authenticated is True
        assert store.keys(NAMESPACE) == {ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY, ID_TOKEN_KEY}
        assert load_token_set(store, NAMESPACE) == exchange.exchange_code.return_value

    @pytest.mark.asyncio
    async def test_authorization_url_parameters(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        exchange: MagicMock,
    ) -> None:
        """Given a login, the URL carries PKCE parameters matching the verifier sent later."""
        # Act
        await manager.start_login()

        # Assert
        parts = urlsplit(broker.presented[0])
        params = {key: values[0] for key, values in parse_qs(parts.query).items()}
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
            "https://sso.example.com/realms/test/protocol/openid-connect/auth"
        )
        assert params["client_id"] == "test-client"
        assert params["redirect_uri"] == "com.example.app:/oauth2redirect"
        assert params["response_type"] == "code"
        assert params["scope"] == "openid profile"
        assert params["code_challenge_method"] == "S256"
        assert params["prompt"] == "login"
        assert params["state"]

        code, verifier = exchange.exchange_code.await_args.args
        assert code == "auth-code-123"
        assert compute_code_challenge(verifier) == params["code_challenge"]

    @pytest.mark.asyncio
    async def test_state_mismatch_leaves_logged_out_without_writes(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given a callback with a foreign state, nothing is exchanged or stored."""
        # Arrange
        broker.callback_state = "attacker-state"

        # Act
        with pytest.raises(StateMismatchError):
            await manager.start_login()

        # Assert
        assert manager.state is SessionState.LOGGED_OUT
        assert store.saves == []
        exchange.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_state_is_a_mismatch(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
    ) -> None:
        """Given a callback without state, StateMismatchError is raised."""
        # Arrange
        broker.callback_params = {"code": "abc"}

        # Act / Assert
        with pytest.raises(StateMismatchError):
            await manager.start_login()
        assert manager.state is SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_callback_error_from_provider(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        store: InMemoryCredentialStore,
    ) -> None:
        """Given error=access_denied in the callback, CallbackError carries it."""
        # Arrange
        broker.callback_params = {"error": "access_denied", "error_description": "User denied"}

        # Act
        with pytest.raises(CallbackError) as exc_info:
            await manager.start_login()

        # Assert
        assert exc_info.value.error == "access_denied"
        assert exc_info.value.description == "User denied"
        assert manager.state is SessionState.LOGGED_OUT
        assert store.saves == []

    @pytest.mark.asyncio
    async def test_user_cancel(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        auth_logger: MagicMock,
    ) -> None:
        """Given the broker reports a cancel, state returns to LOGGED_OUT."""
        # Arrange
        broker.error = UserCancelledError("closed")

        # Act
        with pytest.raises(UserCancelledError):
            await manager.start_login()

        # Assert
        assert manager.state is SessionState.LOGGED_OUT
        auth_logger.log_login_failed.assert_called_once()

    @pytest.mark.asyncio
    async def test_unexpected_broker_failure_becomes_callback_error(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
    ) -> None:
        """Given a broker crash, CallbackError is raised and state is LOGGED_OUT."""
        # Arrange
        broker.error = RuntimeError("web view crashed")

        # Act / Assert
        with pytest.raises(CallbackError, match="web view crashed"):
            await manager.start_login()
        assert manager.state is SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_malformed_token_response_persists_nothing(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given a malformed token response, no slot is written."""
        # Arrange
        exchange.exchange_code.side_effect = MalformedResponseError("missing 'refresh_token'")

        # Act
        with pytest.raises(MalformedResponseError):
            await manager.start_login()

        # Assert
        assert manager.state is SessionState.LOGGED_OUT
        assert store.saves == []

    @pytest.mark.asyncio
    async def test_partial_write_is_rolled_back(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
    ) -> None:
        """Given the expiry slot fails to save, the written slots are removed again."""
        # Arrange
        store.fail_on_save.add(EXPIRES_AT_KEY)

        # Act
        with pytest.raises(AuthError):
            await manager.start_login()

        # Assert
        assert store.keys(NAMESPACE) == set()
        assert manager.state is SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_start_login_when_authenticated_is_noop(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        broker: FakeBroker,
    ) -> None:
        """Given a restored session, start_login does not open the browser."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=300)

        # Act
        await manager.start_login()

        # Assert
        assert broker.presented == []
        assert manager.state is SessionState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_start_login_without_broker(self, oidc_config: OIDCConfig, store: InMemoryCredentialStore) -> None:
        """Given no broker, start_login raises ConfigurationError."""
        # Arrange
        manager = AuthSessionManager(oidc_config, store, exchange_client=MagicMock(spec=TokenExchangeClient))

        # Act / Assert
        with pytest.raises(ConfigurationError):
            await manager.start_login()

    @pytest.mark.asyncio
    async def test_split_login_api(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
    ) -> None:
        """Given begin_login()/complete_login(), the session is established."""
        # Arrange
        url = manager.begin_login()
        state = parse_qs(urlsplit(url).query)["state"][0]

        # Act
        assert manager.state is SessionState.AUTHENTICATING
        await manager.complete_login(f"com.example.app:/oauth2redirect?code=xyz&state={state}")

        # Assert
        assert manager.state is SessionState.AUTHENTICATED
        assert load_token_set(store, NAMESPACE) is not None

    @pytest.mark.asyncio
    async def test_callback_is_single_use(self, manager: AuthSessionManager) -> None:
        """Given a consumed callback, replaying it fails."""
        # Arrange
        url = manager.begin_login()
        state = parse_qs(urlsplit(url).query)["state"][0]
        callback = f"com.example.app:/oauth2redirect?code=xyz&state={state}"
        await manager.complete_login(callback)

        # Act / Assert
        with pytest.raises(CallbackError, match="No login attempt"):
            await manager.complete_login(callback)

    def test_cancel_login_is_idempotent(self, manager: AuthSessionManager) -> None:
        """Given a pending login, cancelling twice is harmless."""
        # Arrange
        manager.begin_login()

        # Act
        manager.cancel_login()
        manager.cancel_login()

        # Assert
        assert manager.state is SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_logout_during_exchange_discards_tokens(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given logout while the code exchange is in flight, its tokens are never stored."""
        # Arrange
        exchange_started = asyncio.Event()
        release = asyncio.Event()

        async def slow_exchange(code: str, verifier: str) -> TokenSet:
            exchange_started.set()
            await release.wait()
            return _token_set(300, suffix="late")

        exchange.exchange_code.side_effect = slow_exchange
        login = asyncio.create_task(manager.start_login())
        await exchange_started.wait()

        # Act
        await manager.logout()
        release.set()

        # Assert
        with pytest.raises(UserCancelledError):
            await login
        assert manager.state is SessionState.LOGGED_OUT
        assert store.keys(NAMESPACE) == set()

    @pytest.mark.asyncio
    async def test_logout_while_browser_open_skips_exchange(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given logout while the login page is open, the late callback is never exchanged."""
        # Arrange
        gate = _gate_broker(broker)
        login = asyncio.create_task(manager.start_login())
        await gate.presented.wait()

        # Act
        await manager.logout()
        gate.release.set()

        # Assert
        with pytest.raises(UserCancelledError):
            await login
        assert exchange.exchange_code.await_count == 0
        assert manager.state is SessionState.LOGGED_OUT
        assert store.keys(NAMESPACE) == set()

    @pytest.mark.asyncio
    async def test_cancel_login_while_browser_open_skips_exchange(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        exchange: MagicMock,
    ) -> None:
        """Given cancel_login() while the login page is open, the verifier is never sent."""
        # Arrange
        gate = _gate_broker(broker)
        login = asyncio.create_task(manager.start_login())
        await gate.presented.wait()

        # Act
        manager.cancel_login()
        gate.release.set()

        # Assert
        with pytest.raises(UserCancelledError):
            await login
        exchange.exchange_code.assert_not_awaited()
        assert manager.state is SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_cancelled_start_login_returns_to_logged_out(
        self,
        manager: AuthSessionManager,
        broker: FakeBroker,
        auth_logger: MagicMock,
    ) -> None:
        """Given start_login() cancelled while the page is open, no attempt stays pending."""
        # Arrange
        _gate_broker(broker)

        # Act
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(manager.start_login(), 0.05)

        # Assert
        assert manager.state is SessionState.LOGGED_OUT
        auth_logger.log_login_failed.assert_called_once()
        with pytest.raises(CallbackError, match="No login attempt"):
            await manager.complete_login("com.example.app:/oauth2redirect?code=c&state=s")

    @pytest.mark.asyncio
    async def test_cancelled_during_exchange_returns_to_logged_out(
        self,
        manager: AuthSessionManager,
        store: InMemoryCredentialStore,
        exchange: MagicMock,
    ) -> None:
        """Given start_login() cancelled during the code exchange, nothing is stored."""
        # Arrange
        exchange_started = asyncio.Event()

        async def hanging_exchange(code: str, verifier: str) -> TokenSet:
            exchange_started.set()
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        exchange.exchange_code.side_effect = hanging_exchange
        login = asyncio.create_task(manager.start_login())
        await exchange_started.wait()

        # Act
        login.cancel()
        with pytest.raises(asyncio.CancelledError):
            await login

        # Assert
        assert manager.state is SessionState.LOGGED_OUT
        assert store.keys(NAMESPACE) == set()


# ============================================================================
# Tests: with_fresh_token
# ============================================================================


class TestWithFreshToken:
    """Tests for token freshness and refresh behaviour."""

    @pytest.mark.asyncio
    async def test_not_authenticated(self, manager: AuthSessionManager) -> None:
        """Given no session, NotAuthenticatedError is raised."""
        with pytest.raises(NotAuthenticatedError):
            await manager.with_fresh_token()

    @pytest.mark.asyncio
    async def test_token_with_40s_left_is_returned_as_is(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given 40s to expiry and a 30s margin, the current token is returned."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=40)

        # Act
        token = await manager.with_fresh_token()

        # Assert
        assert token == "access-1"
        exchange.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_token_with_10s_left_is_refreshed(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
        auth_logger: MagicMock,
    ) -> None:
        """Given 10s to expiry and a 30s margin, one refresh runs and the new token is stored."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=10)

        # Act
        token = await manager.with_fresh_token()

        # Assert
        assert token == "access-new"
        exchange.refresh.assert_awaited_once_with("refresh-1")
        stored = load_token_set(store, NAMESPACE)
        assert stored is not None
        assert stored.access_token == "access-new"
        assert stored.refresh_token == "refresh-new"
        assert manager.state is SessionState.AUTHENTICATED
        auth_logger.log_token_refreshed.assert_called_once()

    @pytest.mark.asyncio
    async def test_short_lived_tokens_are_not_refreshed_on_every_call(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given tokens issued for less than the margin, the margin shrinks to half their lifetime."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=5)
        exchange.refresh.return_value = _token_set(20, suffix="short")

        # Act
        first = await manager.with_fresh_token()
        second = await manager.with_fresh_token()

        # Assert
        assert first == second == "access-short"
        exchange.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_keeps_previous_id_token(
        self,
        store: InMemoryCredentialStore,
        make_manager,
    ) -> None:
        """Given a refresh response without id_token, the stored id token survives for logout."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=0)

        # Act
        await manager.with_fresh_token()

        # Assert
        stored = load_token_set(store, NAMESPACE)
        assert stored is not None
        assert stored.id_token == "id-1"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given N concurrent calls on an expired token, exactly one refresh exchange runs."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)

        async def slow_refresh(refresh_token: str) -> TokenSet:
            await asyncio.sleep(0.01)
            return _token_set(300, suffix="new")

        exchange.refresh.side_effect = slow_refresh

        # Act
        tokens = await asyncio.gather(*(manager.with_fresh_token() for _ in range(10)))

        # Assert
        assert tokens == ["access-new"] * 10
        assert exchange.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_refresh(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given one waiter is cancelled, the other still gets the refreshed token."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        release = asyncio.Event()

        async def slow_refresh(refresh_token: str) -> TokenSet:
            await release.wait()
            return _token_set(300, suffix="new")

        exchange.refresh.side_effect = slow_refresh
        first = asyncio.create_task(manager.with_fresh_token())
        second = asyncio.create_task(manager.with_fresh_token())
        await asyncio.sleep(0)

        # Act
        first.cancel()
        release.set()

        # Assert
        assert await second == "access-new"
        assert exchange.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_grant_expires_session(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
        auth_logger: MagicMock,
    ) -> None:
        """Given invalid_grant on refresh, all slots are cleared and SessionExpiredError is raised."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        exchange.refresh.side_effect = ExchangeRejectedError(400, {"error": "invalid_grant"})
        flips: list[bool] = []
        manager.subscribe(flips.append)

        # Act
        with pytest.raises(SessionExpiredError):
            await manager.with_fresh_token()

        # Assert
        assert store.keys(NAMESPACE) == set()
        assert manager.state is SessionState.LOGGED_OUT
        assert flips == [False]
        auth_logger.log_token_refresh_failed.assert_called_once()
        assert auth_logger.log_token_refresh_failed.call_args.kwargs["terminal"] is True

    @pytest.mark.asyncio
    async def test_missing_refresh_token_expires_session(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given an expired token without refresh token, the session expires without a request."""
        # Arrange
        expired = _token_set(-60).model_copy(update={"refresh_token": None})
        save_token_set(store, NAMESPACE, expired)
        manager = make_manager()

        # Act
        with pytest.raises(SessionExpiredError):
            await manager.with_fresh_token()

        # Assert
        exchange.refresh.assert_not_awaited()
        assert store.keys(NAMESPACE) == set()
        assert manager.is_authenticated is False

    @pytest.mark.parametrize(
        "error",
        [
            TransportFailureError("timed out"),
            ExchangeRejectedError(503, "maintenance"),
            MalformedResponseError("missing 'expires_in'"),
        ],
    )
    @pytest.mark.asyncio
    async def test_non_terminal_failure_keeps_session(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
        error: AuthError,
    ) -> None:
        """Given a transient refresh failure, the error propagates and the session stays."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        exchange.refresh.side_effect = error

        # Act
        with pytest.raises(type(error)):
            await manager.with_fresh_token()

        # Assert
        assert manager.state is SessionState.AUTHENTICATED
        assert load_token_set(store, NAMESPACE) is not None

    @pytest.mark.asyncio
    async def test_retry_after_transient_failure_runs_new_refresh(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given a failed refresh, the next call starts a fresh exchange."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        exchange.refresh.side_effect = [TransportFailureError("offline"), _token_set(300, suffix="new")]
        with pytest.raises(TransportFailureError):
            await manager.with_fresh_token()

        # Act
        token = await manager.with_fresh_token()

        # Assert
        assert token == "access-new"
        assert exchange.refresh.await_count == 2

    @pytest.mark.asyncio
    async def test_logout_during_refresh_discards_result(
        self,
        store: InMemoryCredentialStore,
        make_manager,
        exchange: MagicMock,
    ) -> None:
        """Given logout while a refresh is in flight, the refreshed tokens are not stored."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        release = asyncio.Event()

        async def slow_refresh(refresh_token: str) -> TokenSet:
            await release.wait()
            return _token_set(300, suffix="new")

        exchange.refresh.side_effect = slow_refresh
        pending = asyncio.create_task(manager.with_fresh_token())
        await asyncio.sleep(0)

        # Act
        await manager.logout()
        release.set()

        # Assert
        with pytest.raises(NotAuthenticatedError):
            await pending
        assert store.keys(NAMESPACE) == set()
        assert manager.state is SessionState.LOGGED_OUT


# ============================================================================
# Tests: Status and restore
# ============================================================================


class TestStatus:
    """Tests for restore at construction and the status signal."""

    def test_restores_stored_session(self, store: InMemoryCredentialStore, make_manager) -> None:
        """Given a complete stored TokenSet, the manager starts AUTHENTICATED."""
        # Act
        manager = _authenticated(store, make_manager, expires_in=-60)

        # Assert
        assert manager.state is SessionState.AUTHENTICATED
        assert manager.is_authenticated is True

    def test_empty_store_starts_logged_out(self, manager: AuthSessionManager) -> None:
        """Given an empty store, the manager starts LOGGED_OUT."""
        assert manager.state is SessionState.LOGGED_OUT
        assert manager.is_authenticated is False

    @pytest.mark.asyncio
    async def test_listeners_see_each_flip_once(self, manager: AuthSessionManager) -> None:
        """Given login then logout, listeners get True then False."""
        # Arrange
        flips: list[bool] = []
        manager.subscribe(flips.append)

        # Act
        await manager.start_login()
        await manager.logout()

        # Assert
        assert flips == [True, False]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self, manager: AuthSessionManager) -> None:
        """Given an unsubscribed listener, it is not called."""
        # Arrange
        flips: list[bool] = []
        unsubscribe = manager.subscribe(flips.append)
        unsubscribe()
        unsubscribe()

        # Act
        await manager.start_login()

        # Assert
        assert flips == []

    @pytest.mark.asyncio
    async def test_silent_refresh_does_not_flip_status(
        self,
        store: InMemoryCredentialStore,
        make_manager,
    ) -> None:
        """Given a successful refresh, the authenticated flag never flips."""
        # Arrange
        manager = _authenticated(store, make_manager, expires_in=-60)
        flips: list[bool] = []
        manager.subscribe(flips.append)

        # Act
        await manager.with_fresh_token()

        # Assert
        assert flips == []

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_alone(
        self,
        manager: AuthSessionManager,
        exchange: MagicMock,
    ) -> None:
        """Given an injected exchange client, close() does not close it."""
        # Act
        await manager.close()

        # Assert
        exchange.aclose.assert_not_awaited()

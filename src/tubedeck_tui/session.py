"""Session lifecycle: credential ownership, refresh and re-authentication."""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

from .errors import (
    NetworkError,
    NotFound,
    PersistenceError,
    ProviderError,
    ReauthRequired,
    TransientError,
)
from .logging_utils import get_logger
from .oauth import Credential, DeviceAuthClient, DeviceGrantState
from .token_store import TokenStore

log = get_logger(__name__)

DEFAULT_REFRESH_MARGIN = 60.0

# Token endpoint error codes meaning the refresh token itself is dead.
_REVOKED_CODES = frozenset({"invalid_grant", "unauthorized_client"})


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


def _consume_refresh_outcome(task: asyncio.Task[str]) -> None:
    # Every caller may have been cancelled while the shared refresh ran.
    if not task.cancelled():
        task.exception()


class SessionManager:
    """Own the current credential and hand out valid access tokens.

    All credential mutation goes through this class. ``get_valid_token`` is
    the single entry point used before API calls; refreshes are single-flight,
    so concurrent callers share one refresh request and its outcome.
    """

    def __init__(
        self,
        store: TokenStore,
        auth_client: DeviceAuthClient,
        *,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._auth = auth_client
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._state = SessionState.UNAUTHENTICATED
        self._refresh_task: Optional[asyncio.Task[str]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    @property
    def auth_client(self) -> DeviceAuthClient:
        return self._auth

    def _transition(self, state: SessionState) -> None:
        if state is not self._state:
            log.debug("Session state %s -> %s", self._state.value, state.value)
            self._state = state

    def _persist(self, credential: Credential) -> None:
        try:
            self._store.save(credential)
        except PersistenceError as exc:
            log.warning("Keeping credential in memory only: %s", exc)

    def _forget(self) -> None:
        self._credential = None
        try:
            self._store.clear()
        except PersistenceError as exc:
            log.warning("Could not remove stored credential: %s", exc)
        self._transition(SessionState.UNAUTHENTICATED)

    def restore(self) -> SessionState:
        """Load the persisted credential, if any, and pick the initial state."""

        try:
            credential = self._store.load()
        except NotFound:
            log.info("No stored credential; sign-in required")
            self._transition(SessionState.UNAUTHENTICATED)
            return self._state
        except PersistenceError as exc:
            log.warning("Ignoring unreadable credential store: %s", exc)
            self._transition(SessionState.UNAUTHENTICATED)
            return self._state
        self._credential = credential
        if credential.seconds_remaining(self._clock()) > 0:
            self._transition(SessionState.AUTHENTICATED)
        else:
            log.info("Stored access token has expired; it will be refreshed on first use")
            self._transition(SessionState.REFRESHING)
        return self._state

    def _token_is_fresh(self) -> bool:
        credential = self._credential
        return (
            credential is not None
            and self._state is SessionState.AUTHENTICATED
            and credential.seconds_remaining(self._clock()) > self._refresh_margin
        )

    async def get_valid_token(self) -> str:
        """Return an access token that stays valid for at least the safety margin."""

        if self._token_is_fresh():
            assert self._credential is not None
            return self._credential.access_token
        if self._credential is None:
            raise ReauthRequired("Sign-in required")
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._refresh(), name="token-refresh")
            task.add_done_callback(_consume_refresh_outcome)
            self._refresh_task = task
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Treat the current access token as revoked.

        The next :meth:`get_valid_token` call refreshes it once, shared by
        every caller, instead of handing the rejected token out again.
        """

        if self._credential is None or self._state is not SessionState.AUTHENTICATED:
            return
        log.info("Access token was rejected by the API; it will be refreshed")
        self._transition(SessionState.REFRESHING)

    def close(self) -> None:
        """Cancel a refresh that is still in flight."""

        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _refresh(self) -> str:
        credential = self._credential
        if credential is None:  # pragma: no cover - guarded by get_valid_token
            raise ReauthRequired("Sign-in required")
        self._transition(SessionState.REFRESHING)
        log.info("Refreshing access token (%.0fs remaining)", credential.seconds_remaining(self._clock()))
        try:
            refreshed = await self._auth.refresh(credential)
        except NetworkError as exc:
            log.warning("Token refresh failed transiently: %s", exc)
            raise TransientError(f"Could not refresh the session: {exc}") from exc
        except ProviderError as exc:
            if exc.code in _REVOKED_CODES:
                log.warning("Refresh token rejected (%s); clearing stored credential", exc.code)
                self._forget()
                raise ReauthRequired("Your session has expired; please sign in again") from exc
            log.error("Token refresh rejected: %s", exc)
            raise
        finally:
            self._refresh_task = None
        if self._credential is not credential:
            # Signed out or re-authenticated while the refresh was in flight.
            if self._credential is None:
                raise ReauthRequired("Sign-in required")
            return self._credential.access_token
        self._credential = refreshed
        self._persist(refreshed)
        self._transition(SessionState.AUTHENTICATED)
        log.info("Access token refreshed")
        return refreshed.access_token

    def begin_authentication(self) -> None:
        self._transition(SessionState.AUTHENTICATING)

    def complete(self, credential: Credential) -> None:
        """Adopt a credential obtained from a finished device flow."""

        self._credential = credential
        self._persist(credential)
        self._transition(SessionState.AUTHENTICATED)
        log.info("Signed in; token valid for %.0fs", credential.seconds_remaining(self._clock()))

    def abort_authentication(self) -> None:
        if self._state is SessionState.AUTHENTICATING:
            self._transition(
                SessionState.UNAUTHENTICATED
                if self._credential is None
                else SessionState.REFRESHING
            )

    async def authenticate(
        self, on_grant: Optional[Callable[[DeviceGrantState], None]] = None
    ) -> Credential:
        """Run a complete device flow and adopt the resulting credential.

        Cancelling the awaiting task stops polling; the grant state is dropped.
        """

        self.begin_authentication()
        try:
            grant = await self._auth.begin()
            if on_grant is not None:
                on_grant(grant)
            credential = await self._auth.poll(grant)
        except BaseException:
            self.abort_authentication()
            raise
        self.complete(credential)
        return credential

    def sign_out(self) -> None:
        log.info("Signing out")
        self._forget()


__all__ = ["DEFAULT_REFRESH_MARGIN", "SessionManager", "SessionState"]

"""Session guard: the single authenticated/unauthenticated gate."""
import logging
from typing import Protocol

from schemas.session import CurrentUser, Session, SessionState
from services.exceptions import BackendError, InvalidSessionStateError

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Auth operations the guard needs from the backend."""

    async def get_current_user(self) -> CurrentUser | None: ...

    async def sign_out(self) -> None: ...


class Navigator(Protocol):
    """Performs a full navigation away from the dashboard."""

    def redirect(self, url: str) -> None: ...


class SessionGuard:
    """
    Resolves the current identity once per load.

    State machine: UNRESOLVED -> AUTHENTICATED | UNAUTHENTICATED. Entering
    UNAUTHENTICATED redirects to the entry point; nothing downstream runs.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        navigator: Navigator,
        entry_point_url: str = "/",
    ) -> None:
        self._identity = identity
        self._navigator = navigator
        self._entry_point_url = entry_point_url
        self._state = SessionState.UNRESOLVED
        self._session: Session | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    @property
    def session(self) -> Session:
        """The resolved session; only valid once authenticated."""
        if self._session is None or not self.is_authenticated:
            raise InvalidSessionStateError(f"No authenticated session (state={self._state})")
        return self._session

    def _end(self) -> None:
        self._session = None
        self._state = SessionState.UNAUTHENTICATED
        self._navigator.redirect(self._entry_point_url)

    async def resolve(self) -> Session | None:
        """
        Ask the backend for the current identity. Single attempt, no retry.

        Returns:
            The session if authenticated, otherwise None (after redirecting).
            Identity lookup failures are treated as unauthenticated and only logged.
        """
        if self._state != SessionState.UNRESOLVED:
            raise InvalidSessionStateError(f"Session already resolved (state={self._state})")

        try:
            user = await self._identity.get_current_user()
        except BackendError as e:
            logger.warning("session_resolve_failed error=%s", e)
            user = None

        if user is None:
            logger.info("session_unauthenticated redirect=%s", self._entry_point_url)
            self._end()
            return None

        self._session = Session(user=user)
        self._state = SessionState.AUTHENTICATED
        logger.info("session_authenticated user_id=%s", user.id)
        return self._session

    async def sign_out(self) -> None:
        """Sign out and redirect. The redirect happens even if sign-out fails."""
        try:
            await self._identity.sign_out()
        except BackendError as e:
            logger.warning("session_sign_out_failed error=%s", e)
        finally:
            self._end()

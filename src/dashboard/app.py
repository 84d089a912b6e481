"""Dashboard: wires session guard, bookmark store and realtime bridge for one session."""
import logging
from contextlib import AsyncExitStack
from types import TracebackType
from typing import Protocol

from core.config import Settings
from realtime.bridge import ChangeFeed, RealtimeEventBridge
from services.bookmark_store import BookmarkBackend, BookmarkStore, Notifier
from services.exceptions import InvalidSessionStateError
from services.session_guard import IdentityProvider, Navigator, SessionGuard

logger = logging.getLogger(__name__)


class DashboardBackend(BookmarkBackend, IdentityProvider, Protocol):
    """Everything the dashboard needs from the backend's auth and row APIs."""


class Dashboard:
    """
    One authenticated dashboard session.

    `start()` resolves the identity, loads the list and opens the realtime
    bridge. The bridge is held in an AsyncExitStack, so leaving the context
    (normally, by exception, or by cancellation) always releases it.
    """

    def __init__(
        self,
        backend: DashboardBackend,
        feed: ChangeFeed,
        navigator: Navigator,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self._backend = backend
        self._feed = feed
        self._notifier = notifier
        self._settings = settings
        self.guard = SessionGuard(backend, navigator, settings.entry_point_url)
        self._store: BookmarkStore | None = None
        self._bridge: RealtimeEventBridge | None = None
        self._stack: AsyncExitStack | None = None

    @property
    def store(self) -> BookmarkStore:
        if self._store is None:
            raise InvalidSessionStateError("Dashboard has not been started")
        return self._store

    @property
    def bridge(self) -> RealtimeEventBridge:
        if self._bridge is None:
            raise InvalidSessionStateError("Realtime bridge is not open")
        return self._bridge

    async def __aenter__(self) -> "Dashboard":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self, *, realtime: bool = True) -> bool:
        """
        Resolve the session and activate the store (and, optionally, the bridge).

        Returns:
            False if the visitor is unauthenticated (already redirected);
            True once the list is loaded and the bridge is open.
        """
        session = await self.guard.resolve()
        if session is None:
            return False

        self._store = BookmarkStore(self._backend, session, self._notifier)
        await self._store.load()

        if realtime:
            stack = AsyncExitStack()
            try:
                self._bridge = await stack.enter_async_context(
                    RealtimeEventBridge(self._store, self._feed, self._settings.bookmarks_table),
                )
            except BaseException:
                await stack.aclose()
                raise
            self._stack = stack
        return True

    async def stop(self) -> None:
        """Release the realtime subscription, if any. Safe to call twice."""
        stack, self._stack = self._stack, None
        self._bridge = None
        if stack is not None:
            await stack.aclose()

    async def logout(self) -> None:
        """Tear down the realtime feed, then sign out and redirect."""
        await self.stop()
        await self.guard.sign_out()
        logger.info("dashboard_logout")

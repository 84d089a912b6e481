"""Pytest fixtures and in-memory fakes for the backend collaborators."""
import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from core.config import Settings
from schemas.bookmark import Bookmark, BookmarkCreate, BookmarkId
from schemas.realtime import ChangeEvent, ChangeEventType
from schemas.session import CurrentUser, Session
from services.bookmark_store import BookmarkStore
from services.exceptions import BackendError

OWNER_ID = "8f14e45f-ceea-467f-a0e6-1b2c3d4e5f60"
BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def make_bookmark(
    bookmark_id: BookmarkId,
    title: str = "Docs",
    url: str = "https://example.com",
    owner: str = OWNER_ID,
    minutes: int = 0,
) -> Bookmark:
    """Build a bookmark row created `minutes` after BASE_TIME."""
    return Bookmark(
        id=bookmark_id,
        title=title,
        url=url,
        owner=owner,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


def row_dict(bookmark: Bookmark) -> dict[str, Any]:
    """Wire representation of a row, as the backend sends it."""
    return bookmark.model_dump(mode="json", by_alias=True)


class FakeBackend:
    """
    In-memory backend: authoritative rows plus switches for failure modes.

    `on_insert` runs after the row is stored but before the insert call
    returns, which is where a realtime echo can overtake the response.
    """

    def __init__(self, user: CurrentUser | None = None) -> None:
        self.user = user
        self.rows: list[Bookmark] = []
        self.next_id = 1
        self.calls: list[str] = []
        self.identity_error: BackendError | None = None
        self.sign_out_error: BackendError | None = None
        self.select_error: BackendError | None = None
        self.insert_error: BackendError | None = None
        self.delete_error: BackendError | None = None
        self.return_inserted_row = True
        self.on_insert: Callable[[Bookmark], None] | None = None
        self.on_delete: Callable[[BookmarkId], None] | None = None

    async def get_current_user(self) -> CurrentUser | None:
        self.calls.append("get_current_user")
        if self.identity_error:
            raise self.identity_error
        return self.user

    async def sign_out(self) -> None:
        self.calls.append("sign_out")
        if self.sign_out_error:
            raise self.sign_out_error
        self.user = None

    async def select_bookmarks(self, owner_id: str) -> list[Bookmark]:
        self.calls.append("select")
        await asyncio.sleep(0)
        if self.select_error:
            raise self.select_error
        rows = [r for r in self.rows if r.owner == owner_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    async def insert_bookmark(self, data: BookmarkCreate) -> Bookmark | None:
        self.calls.append("insert")
        await asyncio.sleep(0)
        if self.insert_error:
            raise self.insert_error
        row = make_bookmark(
            self.next_id, title=data.title, url=data.url, owner=data.owner, minutes=self.next_id,
        )
        self.next_id += 1
        self.rows.append(row)
        if self.on_insert:
            self.on_insert(row)
        return row if self.return_inserted_row else None

    async def delete_bookmark(self, bookmark_id: BookmarkId) -> None:
        self.calls.append("delete")
        if self.on_delete:
            self.on_delete(bookmark_id)
        await asyncio.sleep(0)
        if self.delete_error:
            raise self.delete_error
        self.rows = [r for r in self.rows if r.id != bookmark_id]


class RecordingNotifier:
    """Collects user-visible error messages."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify_error(self, message: str) -> None:
        self.messages.append(message)


class RecordingNavigator:
    """Collects redirect targets."""

    def __init__(self) -> None:
        self.redirects: list[str] = []

    def redirect(self, url: str) -> None:
        self.redirects.append(url)


_END = object()


class FakeSubscription:
    """Subscription fed by the test through `push()` and stopped by `end()`."""

    def __init__(
        self,
        table: str,
        event_types: frozenset[ChangeEventType],
        owner_id: str | None = None,
    ) -> None:
        self.table = table
        self.event_types = event_types
        self.owner_id = owner_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeChangeFeed:
    """Tracks subscribe/unsubscribe pairing."""

    def __init__(self) -> None:
        self.subscriptions: list[FakeSubscription] = []
        self.unsubscribed: list[FakeSubscription] = []
        self.subscribe_error: Exception | None = None

    @property
    def active(self) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s not in self.unsubscribed]

    async def subscribe(
        self,
        table: str,
        event_types: frozenset[ChangeEventType],
        *,
        owner_id: str | None = None,
    ) -> FakeSubscription:
        if self.subscribe_error:
            raise self.subscribe_error
        subscription = FakeSubscription(table, event_types, owner_id)
        self.subscriptions.append(subscription)
        return subscription

    async def unsubscribe(self, subscription: FakeSubscription) -> None:
        self.unsubscribed.append(subscription)


def insert_event(bookmark: Bookmark) -> ChangeEvent:
    return ChangeEvent(event_type="INSERT", table="bookmarks", new=row_dict(bookmark))


def delete_event(bookmark_id: BookmarkId) -> ChangeEvent:
    return ChangeEvent(event_type="DELETE", table="bookmarks", old={"id": bookmark_id})


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake project, independent of the local environment."""
    return Settings(
        _env_file=None,
        SUPABASE_URL="https://project.supabase.co",
        SUPABASE_ANON_KEY="anon-key",
        SUPABASE_ACCESS_TOKEN="user-token",
    )


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(id=OWNER_ID, email="user@example.com")


@pytest.fixture
def session(current_user: CurrentUser) -> Session:
    return Session(user=current_user)


@pytest.fixture
def backend(current_user: CurrentUser) -> FakeBackend:
    return FakeBackend(user=current_user)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def store(backend: FakeBackend, session: Session, notifier: RecordingNotifier) -> BookmarkStore:
    return BookmarkStore(backend, session, notifier)

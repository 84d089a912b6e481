"""
In-memory bookmark list for one session, reconciled against the backend.

Three independent sources feed the list: the initial/recovery fetch, local
mutations, and remote change notifications. All of them run on one event loop,
but a backend call suspends its caller, so a notification for the same row can
be applied in between. The id-presence check on every insert path is what keeps
the list free of duplicates.

Invariants:
- no two entries share an id
- entries are newest-first; new entries always go to the front and existing
  entries are never reordered
"""
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from schemas.bookmark import Bookmark, BookmarkCreate, BookmarkId
from schemas.session import Session
from services.exceptions import BackendError

logger = logging.getLogger(__name__)

ADD_FAILED_MESSAGE = "Failed to add bookmark"
DELETE_FAILED_MESSAGE = "Failed to delete bookmark"
LOAD_FAILED_MESSAGE = "Failed to load bookmarks"

BookmarkListener = Callable[[tuple[Bookmark, ...]], None]


class BookmarkBackend(Protocol):
    """Row operations the store needs from the backend."""

    async def select_bookmarks(self, owner_id: str) -> list[Bookmark]: ...

    async def insert_bookmark(self, data: BookmarkCreate) -> Bookmark | None: ...

    async def delete_bookmark(self, bookmark_id: BookmarkId) -> None: ...


class Notifier(Protocol):
    """Surfaces user-visible error messages."""

    def notify_error(self, message: str) -> None: ...


@dataclass
class BookmarkDraft:
    """Pending input fields for the next insert."""

    title: str = ""
    url: str = ""

    def clear(self) -> None:
        self.title = ""
        self.url = ""


class BookmarkStore:
    """Owns the canonical bookmark list for a session."""

    def __init__(
        self,
        backend: BookmarkBackend,
        session: Session,
        notifier: Notifier,
    ) -> None:
        self._backend = backend
        self._session = session
        self._notifier = notifier
        self._bookmarks: list[Bookmark] = []
        self._listeners: list[BookmarkListener] = []
        self.draft = BookmarkDraft()

    @property
    def bookmarks(self) -> tuple[Bookmark, ...]:
        """Snapshot of the current list, newest first."""
        return tuple(self._bookmarks)

    def __len__(self) -> int:
        return len(self._bookmarks)

    @property
    def owner_id(self) -> str:
        return self._session.owner_id

    def __contains__(self, bookmark_id: object) -> bool:
        return any(b.id == bookmark_id for b in self._bookmarks)

    def add_listener(self, listener: BookmarkListener) -> None:
        """
        Register a callback invoked with the new snapshot after every change.

        Exceptions raised by a listener are logged and do not reach the caller
        of the mutation.
        """
        self._listeners.append(listener)

    def _changed(self) -> None:
        snapshot = self.bookmarks
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("bookmark_listener_failed listener=%r", listener)

    def _prepend_if_absent(self, bookmark: Bookmark) -> bool:
        if bookmark.id in self:
            return False
        self._bookmarks.insert(0, bookmark)
        self._changed()
        return True

    def _remove(self, bookmark_id: BookmarkId) -> bool:
        remaining = [b for b in self._bookmarks if b.id != bookmark_id]
        if len(remaining) == len(self._bookmarks):
            return False
        self._bookmarks = remaining
        self._changed()
        return True

    async def load(self) -> bool:
        """
        Replace the whole list with the owner's rows from the backend.

        This is also the recovery path after failed or ambiguous mutations.

        Returns:
            True if the list was replaced, False if the fetch failed (the list
            is then left as it was and the user is notified).
        """
        try:
            rows = await self._backend.select_bookmarks(self._session.owner_id)
        except BackendError as e:
            logger.error("bookmark_load_failed error=%s", e)
            self._notifier.notify_error(LOAD_FAILED_MESSAGE)
            return False
        self._bookmarks = list(rows or [])
        logger.debug("bookmark_load count=%s", len(self._bookmarks))
        self._changed()
        return True

    async def insert(self, title: str, url: str) -> None:
        """
        Create a bookmark owned by the session user.

        Empty title or URL is silently refused (no backend call, draft kept).
        A missing or malformed returned row is treated as ambiguous and
        resolved by reloading.
        """
        if not title.strip() or not url.strip():
            return

        logger.info("bookmark_insert title=%s url=%s owner=%s", title, url, self._session.owner_id)
        data = BookmarkCreate(title=title, url=url, owner=self._session.owner_id)
        try:
            created = await self._backend.insert_bookmark(data)
        except BackendError as e:
            logger.error("bookmark_insert_failed error=%s", e)
            self._notifier.notify_error(ADD_FAILED_MESSAGE)
            return

        if created is not None:
            if not self._prepend_if_absent(created):
                logger.debug("bookmark_insert_already_present id=%s", created.id)
        else:
            logger.warning("bookmark_insert_no_row reloading")
            await self.load()

        self.draft.clear()

    async def insert_draft(self) -> None:
        """Insert using the pending input fields."""
        await self.insert(self.draft.title, self.draft.url)

    async def delete(self, bookmark_id: BookmarkId) -> None:
        """
        Delete optimistically: remove locally first, then ask the backend.

        On failure the removal is not undone in place; the list is reloaded
        instead, so the row reappears only once the recovery fetch completes.
        """
        self._remove(bookmark_id)
        try:
            await self._backend.delete_bookmark(bookmark_id)
        except BackendError as e:
            logger.error("bookmark_delete_failed id=%s error=%s", bookmark_id, e)
            self._notifier.notify_error(DELETE_FAILED_MESSAGE)
            await self.load()

    def apply_remote_insert(self, row: Bookmark | Mapping[str, Any]) -> bool:
        """
        Apply an insert notification. Idempotent by id.

        Returns:
            True if the row was prepended, False if it was already present or
            could not be parsed.
        """
        if isinstance(row, Bookmark):
            bookmark = row
        else:
            try:
                bookmark = Bookmark.model_validate(row)
            except ValidationError as e:
                logger.warning("remote_insert_invalid_row error=%s", e)
                return False
        return self._prepend_if_absent(bookmark)

    def apply_remote_delete(self, bookmark_id: BookmarkId) -> bool:
        """Apply a delete notification; no-op if the id is absent."""
        return self._remove(bookmark_id)

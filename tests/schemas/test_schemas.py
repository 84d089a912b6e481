"""Tests for bookmark, session and change-event schemas."""
import pytest
from pydantic import ValidationError

from schemas.bookmark import Bookmark, BookmarkCreate
from schemas.realtime import ChangeEvent, ChangeEventType
from schemas.session import CurrentUser, Session


class TestBookmark:
    """Tests for the Bookmark row model."""

    def test__owner_read_from_user_id_column(self) -> None:
        bookmark = Bookmark.model_validate(
            {"id": 1, "title": "t", "url": "u", "user_id": "abc", "extra": "ignored"},
        )
        assert bookmark.owner == "abc"
        assert bookmark.created_at is None

    def test__opaque_ids_keep_their_type(self) -> None:
        assert Bookmark(id=1, title="t", url="u").id == 1
        uuid_id = "2b1f6a4e-0000-4000-8000-000000000000"
        assert Bookmark(id=uuid_id, title="t", url="u").id == uuid_id

    def test__url_not_validated(self) -> None:
        assert Bookmark(id=1, title="t", url="not a url").url == "not a url"

    def test__frozen(self) -> None:
        bookmark = Bookmark(id=1, title="t", url="u")
        with pytest.raises(ValidationError):
            bookmark.title = "changed"


class TestBookmarkCreate:
    """Tests for the create payload."""

    def test__to_row_uses_backend_column_names(self) -> None:
        data = BookmarkCreate(title="Docs", url="https://example.com", owner="abc")
        assert data.to_row() == {"title": "Docs", "url": "https://example.com", "user_id": "abc"}

    @pytest.mark.parametrize(("title", "url"), [("", "u"), ("t", ""), ("   ", "u")])
    def test__blank_fields_rejected(self, title: str, url: str) -> None:
        with pytest.raises(ValidationError, match="cannot be empty"):
            BookmarkCreate(title=title, url=url, owner="abc")


class TestChangeEvent:
    """Tests for decoding postgres_changes payloads."""

    def test__from_postgres_changes(self) -> None:
        event = ChangeEvent.from_postgres_changes(
            {
                "type": "DELETE",
                "table": "bookmarks",
                "schema": "public",
                "commit_timestamp": "2025-01-01T12:00:00Z",
                "record": {},
                "old_record": {"id": 5},
            },
        )
        assert event.event_type == ChangeEventType.DELETE
        assert event.schema_name == "public"
        assert event.new is None
        assert event.old_id == 5
        assert event.commit_timestamp is not None

    def test__unknown_type_passes_through(self) -> None:
        event = ChangeEvent.from_postgres_changes({"type": "truncate"})
        assert event.event_type == "TRUNCATE"
        assert event.old_id is None


def test__session__owner_id_is_user_id() -> None:
    session = Session(user=CurrentUser(id="abc", email=None))
    assert session.owner_id == "abc"

"""Typed change-feed messages."""
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChangeEventType(StrEnum):
    """Row change types emitted by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    A single row change notification.

    `event_type` is kept as a plain string so unknown types reach the bridge
    (which ignores them) instead of failing validation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: str
    table: str | None = None
    schema_name: str | None = Field(default=None, alias="schema")
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    commit_timestamp: datetime | None = None

    @classmethod
    def from_postgres_changes(cls, data: dict[str, Any]) -> "ChangeEvent":
        """
        Build an event from the `data` object of a `postgres_changes` message.

        Example:
            {"type": "INSERT", "table": "bookmarks", "schema": "public",
             "record": {...}, "old_record": {...}, "commit_timestamp": "..."}
        """
        return cls(
            event_type=str(data.get("type", "")).upper(),
            table=data.get("table"),
            schema=data.get("schema"),
            new=data.get("record") or None,
            old=data.get("old_record") or None,
            commit_timestamp=data.get("commit_timestamp"),
        )

    @property
    def old_id(self) -> Any:
        """Primary key of the removed row, if the payload carried one."""
        if not self.old:
            return None
        return self.old.get("id")

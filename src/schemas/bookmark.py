"""Pydantic schemas for bookmark rows."""
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

BookmarkId = int | str


def validate_not_blank(value: str) -> str:
    """
    Reject empty or whitespace-only strings.

    Args:
        value: The string to check.

    Returns:
        The value unchanged.

    Raises:
        ValueError: If the value is empty after stripping whitespace.
    """
    if not value.strip():
        raise ValueError("Value cannot be empty")
    return value


class Bookmark(BaseModel):
    """
    A bookmark row as returned by the backend.

    `id` is opaque and is the only key used for equality/deduplication.
    The owner column is called `user_id` on the wire; `owner` is accepted too.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: BookmarkId
    title: str
    url: str
    owner: str | None = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "owner"),
        serialization_alias="user_id",
    )
    created_at: datetime | None = None


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark. The URL is not validated as a URL."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    owner: str = Field(serialization_alias="user_id")

    @field_validator("title", "url")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Title and URL are required."""
        return validate_not_blank(v)

    def to_row(self) -> dict[str, str]:
        """Serialize using backend column names."""
        return self.model_dump(by_alias=True)

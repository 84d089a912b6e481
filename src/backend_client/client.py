"""Backend adapter: identity, sign-out and bookmark row operations over HTTP."""
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from core.config import Settings
from schemas.bookmark import Bookmark, BookmarkCreate, BookmarkId
from schemas.session import CurrentUser
from services.exceptions import BackendError

from .api_client import api_delete, api_get, api_post, get_headers

logger = logging.getLogger(__name__)


def _to_backend_error(e: httpx.HTTPError, context: str) -> BackendError:
    """Translate an httpx failure into a BackendError."""
    if isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        try:
            body = e.response.json()
            detail = body.get("message") or body.get("msg") or body.get("error") or str(body)
        except (ValueError, AttributeError):
            detail = e.response.text
        return BackendError(f"{context} failed ({status}): {detail}", status_code=status)
    return BackendError(f"{context} failed: backend unavailable ({e})")


class BackendClient:
    """
    Talks to the managed backend's auth and row APIs.

    Row reads are always filtered to the given owner; row-level security on the
    backend enforces the same rule, the filter just keeps the query explicit.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        access_token: str | None = None,
    ) -> None:
        self._http = http_client
        self._settings = settings
        self._access_token = settings.access_token if access_token is None else access_token

    @property
    def access_token(self) -> str:
        """The user access token (empty when not signed in)."""
        return self._access_token

    @property
    def _table_url(self) -> str:
        return f"{self._settings.rest_url}/{self._settings.bookmarks_table}"

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = get_headers(self._settings.supabase_anon_key, self._access_token or None)
        headers.update(extra)
        return headers

    async def get_current_user(self) -> CurrentUser | None:
        """
        Resolve the identity behind the access token.

        Returns:
            The current user, or None when there is no token or the backend
            rejects it (401/403).

        Raises:
            BackendError: On transport failures or other error responses.
        """
        if not self._access_token:
            return None
        try:
            data = await api_get(self._http, f"{self._settings.auth_url}/user", self._headers())
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                logger.info("auth_user_rejected status=%s", e.response.status_code)
                return None
            raise _to_backend_error(e, "Resolving current user") from e
        except httpx.HTTPError as e:
            raise _to_backend_error(e, "Resolving current user") from e
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return CurrentUser.model_validate(data)

    async def sign_out(self) -> None:
        """Revoke the current session's token."""
        if not self._access_token:
            return
        try:
            await api_post(self._http, f"{self._settings.auth_url}/logout", self._headers())
        except httpx.HTTPError as e:
            raise _to_backend_error(e, "Signing out") from e
        finally:
            self._access_token = ""

    async def select_bookmarks(self, owner_id: str) -> list[Bookmark]:
        """Fetch all of the owner's bookmarks, newest first."""
        params = {
            "select": "*",
            "user_id": f"eq.{owner_id}",
            "order": "created_at.desc",
        }
        try:
            rows = await api_get(self._http, self._table_url, self._headers(), params)
        except httpx.HTTPError as e:
            raise _to_backend_error(e, "Fetching bookmarks") from e
        try:
            return [Bookmark.model_validate(row) for row in rows or []]
        except (ValidationError, TypeError) as e:
            raise BackendError(f"Fetching bookmarks returned unexpected rows: {e}") from e

    async def insert_bookmark(self, data: BookmarkCreate) -> Bookmark | None:
        """
        Create a bookmark and ask for the created row back.

        Returns:
            The created row, or None when the backend returned no row (e.g. a
            row-level-security policy hides it) or a row of unexpected shape.
        """
        try:
            rows: Any = await api_post(
                self._http,
                self._table_url,
                self._headers(Prefer="return=representation"),
                json=data.to_row(),
            )
        except httpx.HTTPError as e:
            raise _to_backend_error(e, "Adding bookmark") from e

        if isinstance(rows, dict):
            rows = [rows]
        if not rows or not isinstance(rows, list):
            logger.warning("bookmark_insert_no_row_returned")
            return None
        try:
            return Bookmark.model_validate(rows[0])
        except ValidationError as e:
            logger.warning("bookmark_insert_unexpected_row error=%s", e)
            return None

    async def delete_bookmark(self, bookmark_id: BookmarkId) -> None:
        """Delete a bookmark by id."""
        try:
            await api_delete(
                self._http, self._table_url, self._headers(), {"id": f"eq.{bookmark_id}"},
            )
        except httpx.HTTPError as e:
            raise _to_backend_error(e, f"Deleting bookmark {bookmark_id}") from e

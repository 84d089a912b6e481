"""HTTP client helpers for the managed backend's REST endpoints."""

from typing import Any

import httpx

CLIENT_INFO = "smart-bookmarks-py"


def get_headers(api_key: str, token: str | None = None) -> dict[str, str]:
    """
    Get common headers for backend requests.

    The project API key is always sent; the bearer token is the user's access
    token when signed in, otherwise the API key itself (anonymous role).
    """
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {token or api_key}",
        "X-Client-Info": CLIENT_INFO,
    }


async def api_get(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated GET request and return the decoded JSON body."""
    response = await client.get(url, params=params, headers=headers)
    response.raise_for_status()
    return response.json()


async def api_post(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    json: Any = None,
) -> Any:
    """Make an authenticated POST request; returns None for empty bodies."""
    response = await client.post(url, json=json, headers=headers)
    response.raise_for_status()
    if not response.content:
        return None
    return response.json()


async def api_delete(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> None:
    """Make an authenticated DELETE request."""
    response = await client.delete(url, params=params, headers=headers)
    response.raise_for_status()

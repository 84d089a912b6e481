"""HTTP adapters for the managed bookmarks backend."""

from .client import BackendClient

__all__ = ["BackendClient"]

"""Single-session bookmark dashboard."""

from .app import Dashboard

__all__ = ["Dashboard"]

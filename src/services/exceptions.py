"""Shared exceptions for service layer operations."""


class BackendError(Exception):
    """
    Raised when a round trip to the managed backend fails.

    Covers transport failures (no `status_code`) and non-2xx responses. Every
    backend error is terminal for the operation that raised it; callers decide
    whether to notify the user and/or resync.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RealtimeError(BackendError):
    """Raised when the change feed refuses a subscription or its transport fails."""


class InvalidSessionStateError(Exception):
    """Raised when a session is used or resolved in the wrong lifecycle state."""

    def __init__(self, message: str) -> None:
        super().__init__(message)

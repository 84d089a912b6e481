"""Session and identity representations."""
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SessionState(StrEnum):
    """Lifecycle of a session. `authenticated` and `unauthenticated` are terminal."""

    UNRESOLVED = "unresolved"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class CurrentUser(BaseModel):
    """Identity returned by the auth API (only the fields the client needs)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    email: str | None = None


@dataclass(frozen=True)
class Session:
    """
    A resolved, authenticated session.

    Created once by the session guard; everything downstream assumes it is valid.
    """

    user: CurrentUser

    @property
    def owner_id(self) -> str:
        """Owner id used to scope every bookmark read and write."""
        return self.user.id

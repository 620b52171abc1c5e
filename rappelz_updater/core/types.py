"""Core type definitions for rappelz_updater."""

from enum import Enum, StrEnum

from pydantic import BaseModel, Field


class MessageType(Enum):
    """Severity of a status notification."""
    INFORMATION = 0
    ERROR = 1
    WARNING = 2
    SUCCESS = 3


class AuthenticationState(StrEnum):
    """States of the connect/challenge/response handshake."""
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    RESPONDING = "responding"
    AUTHENTICATED = "authenticated"
    DENIED = "denied"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (
            AuthenticationState.AUTHENTICATED,
            AuthenticationState.DENIED,
            AuthenticationState.FAILED,
        )


class UpdateOutcome(StrEnum):
    """Terminal outcome of an update session."""
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    CONNECT_FAILED = "connect_failed"
    AUTHENTICATION_DENIED = "authentication_denied"
    CONNECTION_LOST = "connection_lost"
    MANIFEST_CORRUPT = "manifest_corrupt"
    LOCAL_IO_FAILURE = "local_io_failure"

    @property
    def succeeded(self) -> bool:
        return self in (UpdateOutcome.UP_TO_DATE, UpdateOutcome.UPDATED)


class UpdateResult(BaseModel):
    """Result returned from an update session."""
    outcome: UpdateOutcome = Field(..., description="Terminal outcome")
    start_version: int | None = Field(None, description="Local version before the session")
    final_version: int | None = Field(None, description="Local version after the session")
    target_version: int | None = Field(None, description="Latest version advertised by the server")
    versions_applied: list[int] = Field(default_factory=list, description="Versions committed in order")
    error: str | None = Field(None, description="Failure description")

    @property
    def succeeded(self) -> bool:
        return self.outcome.succeeded

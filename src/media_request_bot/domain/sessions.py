"""Domain models for conversation sessions."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

MAX_CANDIDATES = 99


class ConversationState(str, Enum):
    """States of the per-sender conversation."""

    IDLE = "IDLE"
    SEARCHING = "SEARCHING"
    AWAITING_SELECTION = "AWAITING_SELECTION"
    AWAITING_SUBUNIT_SELECTION = "AWAITING_SUBUNIT_SELECTION"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    PROCESSING = "PROCESSING"


class MediaKind(str, Enum):
    """What the user is searching for."""

    MOVIE = "movie"
    SERIES = "series"
    BOTH = "both"


class Candidate(BaseModel):
    """Normalized catalog search result."""

    title: str
    kind: MediaKind
    year: int | None = None
    overview: str | None = None
    poster_path: str | None = None
    tmdb_id: int | None = None
    tvdb_id: int | None = None
    imdb_id: str | None = None
    subunit_count: int | None = Field(default=None, ge=0)


class Subunit(BaseModel):
    """Addressable part of a multi-part candidate (a season)."""

    number: int = Field(ge=0)
    name: str | None = None
    episode_count: int | None = Field(default=None, ge=0)
    air_date: str | None = None


@dataclass(frozen=True)
class ConversationSession:
    """Represents a persisted conversation session."""

    id: UUID
    sender_hash: str
    state: ConversationState
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    media_kind: MediaKind | None = None
    query: str | None = None
    candidates: list[Candidate] | None = None
    selected_index: int | None = None
    selected_candidate: Candidate | None = None
    available_subunits: list[Subunit] | None = None
    selected_subunits: list[int] | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the session TTL has passed."""
        return (now or datetime.now(tz=UTC)) >= self.expires_at


def new_session(sender_hash: str, ttl: timedelta) -> ConversationSession:
    """Build a fresh IDLE session for a sender."""
    now = datetime.now(tz=UTC)
    return ConversationSession(
        id=uuid4(),
        sender_hash=sender_hash,
        state=ConversationState.IDLE,
        created_at=now,
        updated_at=now,
        expires_at=now + ttl,
    )


def cleared_fields() -> dict[str, object]:
    """Field values for a session returned to IDLE."""
    return {
        "state": ConversationState.IDLE,
        "media_kind": None,
        "query": None,
        "candidates": None,
        "selected_index": None,
        "selected_candidate": None,
        "available_subunits": None,
        "selected_subunits": None,
    }

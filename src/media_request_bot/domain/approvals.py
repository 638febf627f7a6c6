"""Domain models for approval decisions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from media_request_bot.domain.sessions import Candidate


class ApprovalPolicy(str, Enum):
    """System-wide approval mode for confirmed requests."""

    AUTO_APPROVE = "auto_approve"
    AUTO_DENY = "auto_deny"
    MANUAL = "manual"


class OutcomeStatus(str, Enum):
    """Terminal result of an approval decision."""

    REJECTED = "REJECTED"
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ApprovalOutcome:
    """Outcome relayed back to the conversation."""

    status: OutcomeStatus
    error_message: str | None = None


@dataclass(frozen=True)
class ConfirmedSelection:
    """A candidate the user confirmed, with any chosen seasons."""

    session_id: UUID
    sender_hash: str
    candidate: Candidate
    subunits: list[int] | None = None
    reply_to: str | None = None


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a downstream fulfillment call."""

    ok: bool
    error_message: str | None = None


@dataclass(frozen=True)
class RequestRecord:
    """Request history row."""

    id: UUID
    sender_hash: str
    title: str
    kind: str
    status: OutcomeStatus
    year: int | None
    tmdb_id: int | None
    tvdb_id: int | None
    subunits: list[int] | None
    error_message: str | None
    created_at: datetime | None
    reply_to: str | None = None

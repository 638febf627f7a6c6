"""Approval decisions for confirmed requests and admin review of past ones."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from media_request_bot.domain.approvals import (
    ApprovalOutcome,
    ApprovalPolicy,
    ConfirmedSelection,
    OutcomeStatus,
    RequestRecord,
    SubmissionResult,
)
from media_request_bot.domain.sessions import Candidate, MediaKind

_logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = frozenset({OutcomeStatus.PENDING, OutcomeStatus.FAILED})
DEFAULT_REJECT_REASON = "Request rejected by administrator"


class FulfillmentSubmit(Protocol):
    """Downstream service that adds a title to the library."""

    async def submit(
        self, candidate: Candidate, subunits: list[int] | None
    ) -> SubmissionResult:
        """Submit a confirmed candidate."""


class Notifier(Protocol):
    """Pushes a message to a requester out-of-band."""

    async def send(self, recipient_id: str, text: str) -> None:
        """Deliver text to a recipient."""


class RequestHistoryRepository(Protocol):
    """Persistence interface for request history."""

    def create_request(  # noqa: PLR0913
        self,
        sender_hash: str,
        candidate: Candidate,
        subunits: list[int] | None,
        status: OutcomeStatus,
        error_message: str | None,
        reply_to: str | None = None,
    ) -> None:
        """Create a request history row."""

    def get_request(self, request_id: UUID) -> RequestRecord | None:
        """Return a request by id, if present."""

    def update_status(
        self,
        request_id: UUID,
        status: OutcomeStatus,
        error_message: str | None = None,
    ) -> RequestRecord | None:
        """Change a request's status and return the stored row."""

    def list_requests(self, limit: int = 50) -> list[RequestRecord]:
        """Return the most recent requests."""


class RequestNotFoundError(LookupError):
    """Raised when a request id does not exist."""


class RequestNotReviewableError(ValueError):
    """Raised when a request is not PENDING or FAILED."""


@dataclass
class ApprovalService:
    """Routes a confirmed selection through the approval policy."""

    fulfillment: FulfillmentSubmit
    history: RequestHistoryRepository | None = None

    async def decide(
        self, selection: ConfirmedSelection, policy: ApprovalPolicy
    ) -> ApprovalOutcome:
        """Decide, submit when allowed, and record the result."""
        outcome = await self._resolve(selection, policy)
        _logger.info(
            "Approval decided: session=%s policy=%s status=%s",
            selection.session_id,
            policy.value,
            outcome.status.value,
        )
        self._record(selection, outcome)
        return outcome

    async def _resolve(
        self, selection: ConfirmedSelection, policy: ApprovalPolicy
    ) -> ApprovalOutcome:
        if policy == ApprovalPolicy.AUTO_DENY:
            return ApprovalOutcome(status=OutcomeStatus.REJECTED)
        if policy == ApprovalPolicy.MANUAL:
            return ApprovalOutcome(status=OutcomeStatus.PENDING)
        return await submit_candidate(
            self.fulfillment, selection.candidate, selection.subunits
        )

    def _record(self, selection: ConfirmedSelection, outcome: ApprovalOutcome) -> None:
        if self.history is None:
            return
        try:
            self.history.create_request(
                sender_hash=selection.sender_hash,
                candidate=selection.candidate,
                subunits=selection.subunits,
                status=outcome.status,
                error_message=outcome.error_message,
                reply_to=selection.reply_to,
            )
        except Exception:
            _logger.exception(
                "Failed to record request history: session=%s", selection.session_id
            )


@dataclass
class RequestReviewService:
    """Lets an administrator resolve PENDING or FAILED requests."""

    history: RequestHistoryRepository
    fulfillment: FulfillmentSubmit
    notifier: Notifier | None = None

    async def approve(self, request_id: UUID) -> RequestRecord:
        """Submit a held request and record SUBMITTED or FAILED."""
        record = self._load_reviewable(request_id)
        outcome = await submit_candidate(
            self.fulfillment, record_candidate(record), record.subunits
        )
        updated = self._update(record, outcome.status, outcome.error_message)
        _logger.info(
            "Request approved by admin: request=%s status=%s",
            request_id,
            outcome.status.value,
        )
        if outcome.status == OutcomeStatus.SUBMITTED:
            await self._notify(
                record,
                f"Your request has been approved!\n\n{_headline(record)} has been "
                "sent to the library for download.",
            )
        return updated

    async def reject(
        self, request_id: UUID, reason: str | None = None
    ) -> RequestRecord:
        """Record REJECTED for a held request and tell the requester."""
        record = self._load_reviewable(request_id)
        updated = self._update(
            record, OutcomeStatus.REJECTED, reason or DEFAULT_REJECT_REASON
        )
        _logger.info("Request rejected by admin: request=%s", request_id)
        reason_text = f"\n\nReason: {reason}" if reason else ""
        await self._notify(
            record,
            "Your request was declined by an administrator.\n\n"
            f"{_headline(record)}{reason_text}",
        )
        return updated

    def _load_reviewable(self, request_id: UUID) -> RequestRecord:
        record = self.history.get_request(request_id)
        if record is None:
            raise RequestNotFoundError(f"Request {request_id} not found")
        if record.status not in REVIEWABLE_STATUSES:
            raise RequestNotReviewableError(
                f"Request must be PENDING or FAILED, not {record.status.value}"
            )
        return record

    def _update(
        self,
        record: RequestRecord,
        status: OutcomeStatus,
        error_message: str | None,
    ) -> RequestRecord:
        updated = self.history.update_status(record.id, status, error_message)
        if updated is None:
            raise RequestNotFoundError(f"Request {record.id} not found")
        return updated

    async def _notify(self, record: RequestRecord, text: str) -> None:
        if self.notifier is None or not record.reply_to:
            return
        try:
            await self.notifier.send(record.reply_to, text)
        except Exception:
            _logger.exception("Failed to notify requester: request=%s", record.id)


async def submit_candidate(
    fulfillment: FulfillmentSubmit,
    candidate: Candidate,
    subunits: list[int] | None,
) -> ApprovalOutcome:
    """Submit downstream; failures and exceptions become FAILED outcomes."""
    try:
        result = await fulfillment.submit(candidate, subunits)
    except Exception as exc:
        _logger.exception("Fulfillment submit raised: title=%s", candidate.title)
        return ApprovalOutcome(
            status=OutcomeStatus.FAILED,
            error_message=str(exc) or "Submission failed",
        )
    if result.ok:
        return ApprovalOutcome(status=OutcomeStatus.SUBMITTED)
    return ApprovalOutcome(
        status=OutcomeStatus.FAILED,
        error_message=result.error_message or "Submission failed",
    )


def record_candidate(record: RequestRecord) -> Candidate:
    """Rebuild the candidate a history row was created from."""
    return Candidate(
        title=record.title,
        kind=MediaKind(record.kind),
        year=record.year,
        tmdb_id=record.tmdb_id,
        tvdb_id=record.tvdb_id,
    )


def _headline(record: RequestRecord) -> str:
    marker = "[Series]" if record.kind == MediaKind.SERIES.value else "[Movie]"
    year = f" ({record.year})" if record.year else ""
    return f"{marker} {record.title}{year}"

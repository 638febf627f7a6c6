"""Tests for approval decisions."""

import asyncio
from uuid import uuid4

import pytest

from media_request_bot.domain.approvals import (
    ApprovalPolicy,
    ConfirmedSelection,
    OutcomeStatus,
    SubmissionResult,
)
from media_request_bot.services.approvals import (
    ApprovalService,
    RequestNotFoundError,
    RequestNotReviewableError,
    RequestReviewService,
)
from tests.conftest import (
    FakeFulfillment,
    FakeTransport,
    InMemoryRequestRepository,
    movie,
    series,
)


def _selection(**kwargs) -> ConfirmedSelection:
    return ConfirmedSelection(
        session_id=uuid4(),
        sender_hash="hash",
        candidate=kwargs.pop("candidate", movie()),
        **kwargs,
    )


@pytest.mark.parametrize(
    ("policy", "status"),
    [
        (ApprovalPolicy.AUTO_DENY, OutcomeStatus.REJECTED),
        (ApprovalPolicy.MANUAL, OutcomeStatus.PENDING),
    ],
)
def test_policies_without_downstream_call(policy, status) -> None:
    fulfillment = FakeFulfillment()
    history = InMemoryRequestRepository()
    service = ApprovalService(fulfillment=fulfillment, history=history)

    outcome = asyncio.run(service.decide(_selection(), policy))

    assert outcome.status == status
    assert fulfillment.calls == []
    assert history.records[0].status == status


def test_auto_approve_submits_with_subunits() -> None:
    fulfillment = FakeFulfillment()
    service = ApprovalService(fulfillment=fulfillment)

    outcome = asyncio.run(
        service.decide(
            _selection(candidate=series(), subunits=[1, 3]),
            ApprovalPolicy.AUTO_APPROVE,
        )
    )

    assert outcome.status == OutcomeStatus.SUBMITTED
    assert fulfillment.calls[0][1] == [1, 3]


def test_auto_approve_failure_result() -> None:
    fulfillment = FakeFulfillment(
        result=SubmissionResult(ok=False, error_message="Already requested")
    )
    service = ApprovalService(fulfillment=fulfillment)

    outcome = asyncio.run(service.decide(_selection(), ApprovalPolicy.AUTO_APPROVE))

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.error_message == "Already requested"


def test_auto_approve_exception_becomes_failed() -> None:
    fulfillment = FakeFulfillment(error=RuntimeError("boom"))
    history = InMemoryRequestRepository()
    service = ApprovalService(fulfillment=fulfillment, history=history)

    outcome = asyncio.run(service.decide(_selection(), ApprovalPolicy.AUTO_APPROVE))

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.error_message == "boom"
    assert history.records[0].error_message == "boom"


def test_history_failure_does_not_change_outcome() -> None:
    service = ApprovalService(
        fulfillment=FakeFulfillment(),
        history=InMemoryRequestRepository(fail=True),
    )

    outcome = asyncio.run(service.decide(_selection(), ApprovalPolicy.AUTO_APPROVE))

    assert outcome.status == OutcomeStatus.SUBMITTED


def test_decision_records_reply_target() -> None:
    history = InMemoryRequestRepository()
    service = ApprovalService(fulfillment=FakeFulfillment(), history=history)

    asyncio.run(service.decide(_selection(reply_to="42"), ApprovalPolicy.MANUAL))

    assert history.records[0].reply_to == "42"


def _held_request(
    history: InMemoryRequestRepository,
    status: OutcomeStatus = OutcomeStatus.PENDING,
    **kwargs,
):
    history.create_request(
        sender_hash="hash",
        candidate=kwargs.pop("candidate", series()),
        subunits=kwargs.pop("subunits", [1, 2]),
        status=status,
        error_message=None,
        reply_to=kwargs.pop("reply_to", "42"),
    )
    return history.records[-1]


def test_review_approve_submits_and_notifies() -> None:
    history = InMemoryRequestRepository()
    fulfillment = FakeFulfillment()
    notifier = FakeTransport()
    record = _held_request(history)
    service = RequestReviewService(
        history=history, fulfillment=fulfillment, notifier=notifier
    )

    updated = asyncio.run(service.approve(record.id))

    assert updated.status == OutcomeStatus.SUBMITTED
    assert history.get_request(record.id).status == OutcomeStatus.SUBMITTED
    candidate, subunits = fulfillment.calls[0]
    assert candidate.tmdb_id == 1396
    assert candidate.tvdb_id == 81189
    assert candidate.title == "Breaking Bad"
    assert subunits == [1, 2]
    recipient, text = notifier.sent[0]
    assert recipient == "42"
    assert "approved" in text
    assert "[Series] Breaking Bad (2008)" in text


def test_review_approve_failure_records_failed_without_notice() -> None:
    history = InMemoryRequestRepository()
    fulfillment = FakeFulfillment(
        result=SubmissionResult(ok=False, error_message="No Sonarr server")
    )
    notifier = FakeTransport()
    record = _held_request(history, status=OutcomeStatus.FAILED)
    service = RequestReviewService(
        history=history, fulfillment=fulfillment, notifier=notifier
    )

    updated = asyncio.run(service.approve(record.id))

    assert updated.status == OutcomeStatus.FAILED
    assert updated.error_message == "No Sonarr server"
    assert notifier.sent == []


def test_review_reject_records_reason_and_notifies() -> None:
    history = InMemoryRequestRepository()
    fulfillment = FakeFulfillment()
    notifier = FakeTransport()
    record = _held_request(history, candidate=movie(), subunits=None)
    service = RequestReviewService(
        history=history, fulfillment=fulfillment, notifier=notifier
    )

    updated = asyncio.run(service.reject(record.id, "Not on our list"))

    assert updated.status == OutcomeStatus.REJECTED
    assert updated.error_message == "Not on our list"
    assert fulfillment.calls == []
    recipient, text = notifier.sent[0]
    assert recipient == "42"
    assert "declined" in text
    assert "Reason: Not on our list" in text


def test_review_skips_notice_without_reply_target() -> None:
    history = InMemoryRequestRepository()
    notifier = FakeTransport()
    record = _held_request(history, reply_to=None)
    service = RequestReviewService(
        history=history, fulfillment=FakeFulfillment(), notifier=notifier
    )

    updated = asyncio.run(service.reject(record.id))

    assert updated.error_message == "Request rejected by administrator"
    assert notifier.sent == []


def test_review_rejects_unknown_and_settled_requests() -> None:
    history = InMemoryRequestRepository()
    settled = _held_request(history, status=OutcomeStatus.SUBMITTED)
    service = RequestReviewService(history=history, fulfillment=FakeFulfillment())

    with pytest.raises(RequestNotFoundError):
        asyncio.run(service.approve(uuid4()))
    with pytest.raises(RequestNotReviewableError):
        asyncio.run(service.approve(settled.id))
    with pytest.raises(RequestNotReviewableError):
        asyncio.run(service.reject(settled.id))

"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from media_request_bot.domain.approvals import (
    ApprovalPolicy,
    OutcomeStatus,
    RequestRecord,
)
from media_request_bot.services.approvals import (
    RequestNotFoundError,
    RequestNotReviewableError,
)

if TYPE_CHECKING:
    from media_request_bot.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


class PolicyUpdate(BaseModel):
    """Body for updating the approval policy."""

    policy: ApprovalPolicy


class RejectBody(BaseModel):
    """Optional reason shown to the requester."""

    reason: str | None = None


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 20) -> dict[str, object]:
    """Return live conversation sessions."""
    container: AppContainer = request.app.state.container
    sessions = container.session_repository.list_sessions(limit)
    return {
        "sessions": [
            {
                "id": str(session.id),
                "sender": session.sender_hash[:12],
                "state": session.state.value,
                "query": session.query,
                "updated_at": session.updated_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
            }
            for session in sessions
        ]
    }


@router.get("/requests", dependencies=[Depends(require_admin)])
async def list_requests(request: Request, limit: int = 50) -> dict[str, object]:
    """Return recent request history."""
    container: AppContainer = request.app.state.container
    records = container.request_repository.list_requests(limit)
    return {"requests": [_request_payload(record) for record in records]}


@router.post("/requests/{request_id}/approve", dependencies=[Depends(require_admin)])
async def approve_request(request_id: UUID, request: Request) -> dict[str, object]:
    """Submit a PENDING or FAILED request to the library."""
    container: AppContainer = request.app.state.container
    try:
        record = await container.request_review_service.approve(request_id)
    except RequestNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    except RequestNotReviewableError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    if record.status == OutcomeStatus.FAILED:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=record.error_message or "Failed to submit request",
        )
    return _request_payload(record)


@router.post("/requests/{request_id}/reject", dependencies=[Depends(require_admin)])
async def reject_request(
    request_id: UUID, request: Request, body: RejectBody | None = None
) -> dict[str, object]:
    """Decline a PENDING or FAILED request."""
    container: AppContainer = request.app.state.container
    reason = body.reason if body else None
    try:
        record = await container.request_review_service.reject(request_id, reason)
    except RequestNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    except RequestNotReviewableError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    return _request_payload(record)


@router.get("/policy", dependencies=[Depends(require_admin)])
async def get_policy(request: Request) -> dict[str, str]:
    """Return the active approval policy."""
    container: AppContainer = request.app.state.container
    return {"policy": container.policy_service.get_approval_policy().value}


@router.put("/policy", dependencies=[Depends(require_admin)])
async def update_policy(body: PolicyUpdate, request: Request) -> dict[str, str]:
    """Change the approval policy; unknown values are rejected with 422."""
    container: AppContainer = request.app.state.container
    container.policy_service.set_approval_policy(body.policy)
    return {"policy": body.policy.value}


def _request_payload(record: RequestRecord) -> dict[str, object]:
    return {
        "id": str(record.id),
        "sender": record.sender_hash[:12],
        "title": record.title,
        "kind": record.kind,
        "year": record.year,
        "status": record.status.value,
        "subunits": record.subunits,
        "error_message": record.error_message,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }

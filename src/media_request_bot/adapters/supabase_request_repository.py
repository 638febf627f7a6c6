"""Supabase repository for request history."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from media_request_bot.domain.approvals import OutcomeStatus, RequestRecord
from media_request_bot.domain.sessions import Candidate
from media_request_bot.services.approvals import RequestHistoryRepository

_TABLE = "request_history"
_COLUMNS = (
    "id, sender_hash, title, kind, year, tmdb_id, tvdb_id, subunits_json, "
    "status, error_message, reply_to, created_at"
)


@dataclass
class SupabaseRequestRepository(RequestHistoryRepository):
    """Supabase-backed request history repository."""

    client: Client

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
        self.client.table(_TABLE).insert(
            {
                "sender_hash": sender_hash,
                "title": candidate.title,
                "kind": candidate.kind.value,
                "year": candidate.year,
                "tmdb_id": candidate.tmdb_id,
                "tvdb_id": candidate.tvdb_id,
                "subunits_json": subunits,
                "status": status.value,
                "error_message": error_message,
                "reply_to": reply_to,
            }
        ).execute()

    def get_request(self, request_id: UUID) -> RequestRecord | None:
        """Return a request by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("id", str(request_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_record(response.data[0])

    def update_status(
        self,
        request_id: UUID,
        status: OutcomeStatus,
        error_message: str | None = None,
    ) -> RequestRecord | None:
        """Change a request's status and return the stored row."""
        response = (
            self.client.table(_TABLE)
            .update(
                {
                    "status": status.value,
                    "error_message": error_message,
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .eq("id", str(request_id))
            .execute()
        )
        if not response.data:
            return None
        return _row_to_record(response.data[0])

    def list_requests(self, limit: int = 50) -> list[RequestRecord]:
        """Return the most recent requests, newest first."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_row_to_record(row) for row in response.data or []]


def _row_to_record(row: dict[str, object]) -> RequestRecord:
    created_at = row.get("created_at")
    return RequestRecord(
        id=UUID(str(row["id"])),
        sender_hash=str(row["sender_hash"]),
        title=str(row["title"]),
        kind=str(row["kind"]),
        status=OutcomeStatus(row["status"]),
        year=row.get("year"),  # type: ignore[arg-type]
        tmdb_id=row.get("tmdb_id"),  # type: ignore[arg-type]
        tvdb_id=row.get("tvdb_id"),  # type: ignore[arg-type]
        subunits=row.get("subunits_json"),  # type: ignore[arg-type]
        error_message=row.get("error_message"),  # type: ignore[arg-type]
        created_at=datetime.fromisoformat(str(created_at)) if created_at else None,
        reply_to=row.get("reply_to"),  # type: ignore[arg-type]
    )

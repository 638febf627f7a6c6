"""Supabase-backed conversation session repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from pydantic import BaseModel
from supabase import Client

from media_request_bot.domain.sessions import (
    Candidate,
    ConversationSession,
    ConversationState,
    MediaKind,
    Subunit,
)
from media_request_bot.services.sessions import SessionRepository

_TABLE = "conversation_sessions"
_COLUMNS = (
    "id, sender_hash, state, media_kind, query, candidates_json, selected_index, "
    "selected_candidate_json, available_subunits_json, selected_subunits_json, "
    "created_at, updated_at, expires_at"
)
_JSON_COLUMNS = {
    "candidates": "candidates_json",
    "selected_candidate": "selected_candidate_json",
    "available_subunits": "available_subunits_json",
    "selected_subunits": "selected_subunits_json",
}


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for conversation sessions."""

    client: Client

    def get_active_session(self, sender_hash: str) -> ConversationSession | None:
        """Return the most recent live session for a sender."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("sender_hash", sender_hash)
            .gt("expires_at", _now_iso())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    def get_session(self, session_id: UUID) -> ConversationSession | None:
        """Return a live session by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .gt("expires_at", _now_iso())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    def create_session(self, session: ConversationSession) -> ConversationSession:
        """Insert a session row after clearing stale rows for the sender."""
        self.client.table(_TABLE).delete().eq(
            "sender_hash", session.sender_hash
        ).execute()
        response = (
            self.client.table(_TABLE)
            .insert(_session_to_row(session))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create conversation session")
        return _row_to_session(response.data[0])

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> ConversationSession | None:
        """Apply a partial update keyed by session id."""
        response = (
            self.client.table(_TABLE)
            .update(_changes_to_row(changes))
            .eq("id", str(session_id))
            .execute()
        )
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    def delete_session(self, session_id: UUID) -> bool:
        """Delete a session row."""
        response = (
            self.client.table(_TABLE).delete().eq("id", str(session_id)).execute()
        )
        return bool(response.data)

    def list_sessions(self, limit: int = 20) -> list[ConversationSession]:
        """Return live sessions, most recently updated first."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .gt("expires_at", _now_iso())
            .order("updated_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_row_to_session(row) for row in response.data or []]

    def sweep_expired(self) -> int:
        """Delete every session whose TTL has passed."""
        response = (
            self.client.table(_TABLE).delete().lt("expires_at", _now_iso()).execute()
        )
        return len(response.data or [])


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _session_to_row(session: ConversationSession) -> dict[str, object]:
    row = _changes_to_row(
        {
            "state": session.state,
            "media_kind": session.media_kind,
            "query": session.query,
            "candidates": session.candidates,
            "selected_index": session.selected_index,
            "selected_candidate": session.selected_candidate,
            "available_subunits": session.available_subunits,
            "selected_subunits": session.selected_subunits,
            "created_at": session.created_at,
            "updated_at": session.updated_at,
            "expires_at": session.expires_at,
        }
    )
    row["id"] = str(session.id)
    row["sender_hash"] = session.sender_hash
    return row


def _changes_to_row(changes: dict[str, object]) -> dict[str, object]:
    """Translate domain field names and values into table columns."""
    row: dict[str, object] = {}
    for key, value in changes.items():
        if key in _JSON_COLUMNS:
            row[_JSON_COLUMNS[key]] = _to_json(value)
        elif isinstance(value, ConversationState | MediaKind):
            row[key] = value.value
        elif isinstance(value, datetime):
            row[key] = value.isoformat()
        else:
            row[key] = value
    return row


def _to_json(value: object) -> object:
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _row_to_session(row: dict[str, object]) -> ConversationSession:
    candidates = row.get("candidates_json")
    selected = row.get("selected_candidate_json")
    subunits = row.get("available_subunits_json")
    media_kind = row.get("media_kind")
    return ConversationSession(
        id=UUID(str(row["id"])),
        sender_hash=str(row["sender_hash"]),
        state=ConversationState(row["state"]),
        media_kind=MediaKind(media_kind) if media_kind else None,
        query=row.get("query"),  # type: ignore[arg-type]
        candidates=(
            [Candidate.model_validate(item) for item in candidates]
            if isinstance(candidates, list)
            else None
        ),
        selected_index=row.get("selected_index"),  # type: ignore[arg-type]
        selected_candidate=(
            Candidate.model_validate(selected) if isinstance(selected, dict) else None
        ),
        available_subunits=(
            [Subunit.model_validate(item) for item in subunits]
            if isinstance(subunits, list)
            else None
        ),
        selected_subunits=row.get("selected_subunits_json"),  # type: ignore[arg-type]
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
        expires_at=_parse_timestamp(row["expires_at"]),
    )


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed

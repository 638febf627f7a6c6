"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from media_request_bot.adapters.supabase_request_repository import (
    SupabaseRequestRepository,
)
from media_request_bot.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from media_request_bot.adapters.supabase_settings_repository import (
    SupabaseSettingsRepository,
)
from media_request_bot.domain.approvals import OutcomeStatus
from media_request_bot.domain.sessions import (
    ConversationState,
    MediaKind,
    Subunit,
    new_session,
)
from tests.conftest import movie, series


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {
            "select": [],
            "insert": [],
            "update": [],
            "upsert": [],
            "delete": [],
        }
    )
    last_payload: object | None = None
    last_filters: list[tuple[str, str, object]] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def _start(self, action: str, payload: object | None = None) -> "FakeTable":
        self._action = action
        self.actions.append(action)
        if payload is not None:
            self.last_payload = payload
        return self

    def select(self, *_args) -> "FakeTable":
        return self._start("select")

    def insert(self, payload: dict[str, object]) -> "FakeTable":
        return self._start("insert", payload)

    def update(self, payload: dict[str, object]) -> "FakeTable":
        return self._start("update", payload)

    def upsert(
        self, payload: dict[str, object], on_conflict: str = ""
    ) -> "FakeTable":
        return self._start("upsert", payload)

    def delete(self) -> "FakeTable":
        return self._start("delete")

    def eq(self, column: str, value: object) -> "FakeTable":
        self.last_filters.append(("eq", column, value))
        return self

    def gt(self, column: str, value: object) -> "FakeTable":
        self.last_filters.append(("gt", column, value))
        return self

    def lt(self, column: str, value: object) -> "FakeTable":
        self.last_filters.append(("lt", column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def _session_row(**overrides) -> dict[str, object]:
    now = datetime.now(tz=UTC)
    row: dict[str, object] = {
        "id": str(uuid4()),
        "sender_hash": "hash",
        "state": "AWAITING_SELECTION",
        "media_kind": "movie",
        "query": "Inception",
        "candidates_json": [movie().model_dump(mode="json")],
        "selected_index": None,
        "selected_candidate_json": None,
        "available_subunits_json": None,
        "selected_subunits_json": None,
        "created_at": now.isoformat(),
        "updated_at": now.isoformat(),
        "expires_at": (now + timedelta(minutes=5)).isoformat(),
    }
    row.update(overrides)
    return row


def test_session_repository_create_clears_stale_rows() -> None:
    client = FakeSupabaseClient()
    table = client.table("conversation_sessions")
    session = new_session("hash", timedelta(minutes=5))
    table.queue(
        "insert",
        [_session_row(id=str(session.id), state="IDLE", candidates_json=None)],
    )

    created = SupabaseSessionRepository(client).create_session(session)

    assert table.actions == ["delete", "insert"]
    assert ("eq", "sender_hash", "hash") in table.last_filters
    assert created.id == session.id
    assert created.state == ConversationState.IDLE
    assert table.last_payload["state"] == "IDLE"  # type: ignore[index]


def test_session_repository_reads_json_columns() -> None:
    client = FakeSupabaseClient()
    table = client.table("conversation_sessions")
    table.queue(
        "select",
        [
            _session_row(
                state="AWAITING_SUBUNIT_SELECTION",
                selected_candidate_json=series().model_dump(mode="json"),
                available_subunits_json=[{"number": 1, "episode_count": 7}],
            )
        ],
    )

    session = SupabaseSessionRepository(client).get_active_session("hash")

    assert session is not None
    assert session.media_kind == MediaKind.MOVIE
    assert session.candidates is not None
    assert session.candidates[0].title == "Inception"
    assert session.selected_candidate is not None
    assert session.selected_candidate.kind == MediaKind.SERIES
    assert session.available_subunits == [Subunit(number=1, episode_count=7)]
    assert any(op == "gt" and col == "expires_at" for op, col, _ in table.last_filters)


def test_session_repository_update_serializes_changes() -> None:
    client = FakeSupabaseClient()
    table = client.table("conversation_sessions")
    session_id = uuid4()
    table.queue("update", [_session_row(id=str(session_id), state="IDLE")])
    now = datetime.now(tz=UTC)

    updated = SupabaseSessionRepository(client).update_session(
        session_id,
        {
            "state": ConversationState.AWAITING_CONFIRMATION,
            "selected_candidate": movie(),
            "selected_subunits": [1, 2],
            "updated_at": now,
        },
    )

    assert updated is not None
    payload = table.last_payload
    assert isinstance(payload, dict)
    assert payload["state"] == "AWAITING_CONFIRMATION"
    assert payload["selected_candidate_json"]["title"] == "Inception"
    assert payload["selected_subunits_json"] == [1, 2]
    assert payload["updated_at"] == now.isoformat()


def test_session_repository_missing_and_sweep() -> None:
    client = FakeSupabaseClient()
    table = client.table("conversation_sessions")
    table.queue("delete", [{"id": "a"}, {"id": "b"}])
    repository = SupabaseSessionRepository(client)

    assert repository.get_session(uuid4()) is None
    assert repository.update_session(uuid4(), {"state": "IDLE"}) is None
    assert repository.sweep_expired() == 2
    assert repository.delete_session(uuid4()) is False


def test_request_repository_insert_and_list() -> None:
    client = FakeSupabaseClient()
    table = client.table("request_history")
    request_id = uuid4()
    table.queue(
        "select",
        [
            {
                "id": str(request_id),
                "sender_hash": "hash",
                "title": "Breaking Bad",
                "kind": "series",
                "year": 2008,
                "tmdb_id": 1396,
                "tvdb_id": 81189,
                "subunits_json": [1],
                "status": "PENDING",
                "error_message": None,
                "created_at": "2024-05-01T10:00:00+00:00",
            }
        ],
    )
    repository = SupabaseRequestRepository(client)

    repository.create_request(
        sender_hash="hash",
        candidate=series(),
        subunits=[1],
        status=OutcomeStatus.PENDING,
        error_message=None,
        reply_to="42",
    )
    records = repository.list_requests(limit=10)

    assert table.actions[0] == "insert"
    assert table.last_payload["status"] == "PENDING"  # type: ignore[index]
    assert table.last_payload["kind"] == "series"  # type: ignore[index]
    assert table.last_payload["reply_to"] == "42"  # type: ignore[index]
    assert records[0].id == request_id
    assert records[0].status == OutcomeStatus.PENDING
    assert records[0].created_at is not None


def test_request_repository_get_and_update_status() -> None:
    client = FakeSupabaseClient()
    table = client.table("request_history")
    request_id = uuid4()
    row: dict[str, object] = {
        "id": str(request_id),
        "sender_hash": "hash",
        "title": "Inception",
        "kind": "movie",
        "year": 2010,
        "tmdb_id": 27205,
        "tvdb_id": None,
        "subunits_json": None,
        "status": "PENDING",
        "error_message": None,
        "reply_to": "42",
        "created_at": "2024-05-01T10:00:00+00:00",
    }
    table.queue("select", [row])
    table.queue("update", [{**row, "status": "SUBMITTED"}])
    repository = SupabaseRequestRepository(client)

    record = repository.get_request(request_id)
    updated = repository.update_status(request_id, OutcomeStatus.SUBMITTED)

    assert record is not None
    assert record.reply_to == "42"
    assert record.status == OutcomeStatus.PENDING
    assert updated is not None
    assert updated.status == OutcomeStatus.SUBMITTED
    assert table.last_payload["status"] == "SUBMITTED"  # type: ignore[index]
    assert table.last_payload["error_message"] is None  # type: ignore[index]
    assert ("eq", "id", str(request_id)) in table.last_filters
    assert repository.get_request(uuid4()) is None
    assert repository.update_status(uuid4(), OutcomeStatus.REJECTED) is None


def test_settings_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("app_settings")
    table.queue("select", [{"value": "manual"}])
    repository = SupabaseSettingsRepository(client)

    assert repository.get_setting("approval_policy") == "manual"
    assert repository.get_setting("approval_policy") is None

    repository.set_setting("approval_policy", "auto_deny")

    assert table.actions[-1] == "upsert"
    assert table.last_payload["value"] == "auto_deny"  # type: ignore[index]

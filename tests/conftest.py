"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from media_request_bot.adapters.overseerr_client import OverseerrClient
from media_request_bot.adapters.telegram_client import (
    TelegramClient,
    TelegramTransport,
)
from media_request_bot.config import Settings
from media_request_bot.containers import AppContainer
from media_request_bot.domain.approvals import (
    OutcomeStatus,
    RequestRecord,
    SubmissionResult,
)
from media_request_bot.domain.sessions import (
    Candidate,
    ConversationSession,
    MediaKind,
    Subunit,
)
from media_request_bot.services.approvals import (
    ApprovalService,
    RequestHistoryRepository,
    RequestReviewService,
)
from media_request_bot.services.cache import InMemoryCache
from media_request_bot.services.commands import StartCommandHandler
from media_request_bot.services.conversation import ConversationService
from media_request_bot.services.policy import PolicyService, SettingsRepository
from media_request_bot.services.sessions import SessionRepository, SessionSweeper


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository with lazy expiry."""

    sessions: dict[UUID, ConversationSession] = field(default_factory=dict)

    def get_active_session(self, sender_hash: str) -> ConversationSession | None:
        for session in self.sessions.values():
            if session.sender_hash == sender_hash and not session.is_expired():
                return session
        return None

    def get_session(self, session_id: UUID) -> ConversationSession | None:
        session = self.sessions.get(session_id)
        if session is None or session.is_expired():
            return None
        return session

    def create_session(self, session: ConversationSession) -> ConversationSession:
        stale = [
            key
            for key, existing in self.sessions.items()
            if existing.sender_hash == session.sender_hash
        ]
        for key in stale:
            del self.sessions[key]
        self.sessions[session.id] = session
        return session

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> ConversationSession | None:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        updated = replace(session, **changes)
        self.sessions[session_id] = updated
        return updated

    def delete_session(self, session_id: UUID) -> bool:
        return self.sessions.pop(session_id, None) is not None

    def list_sessions(self, limit: int = 20) -> list[ConversationSession]:
        live = [s for s in self.sessions.values() if not s.is_expired()]
        live.sort(key=lambda s: s.updated_at, reverse=True)
        return live[:limit]

    def sweep_expired(self) -> int:
        expired = [key for key, s in self.sessions.items() if s.is_expired()]
        for key in expired:
            del self.sessions[key]
        return len(expired)


@dataclass
class InMemoryRequestRepository(RequestHistoryRepository):
    """In-memory request history."""

    records: list[RequestRecord] = field(default_factory=list)
    fail: bool = False

    def create_request(  # noqa: PLR0913
        self,
        sender_hash: str,
        candidate: Candidate,
        subunits: list[int] | None,
        status: OutcomeStatus,
        error_message: str | None,
        reply_to: str | None = None,
    ) -> None:
        if self.fail:
            raise RuntimeError("history unavailable")
        self.records.append(
            RequestRecord(
                id=uuid4(),
                sender_hash=sender_hash,
                title=candidate.title,
                kind=candidate.kind.value,
                status=status,
                year=candidate.year,
                tmdb_id=candidate.tmdb_id,
                tvdb_id=candidate.tvdb_id,
                subunits=subunits,
                error_message=error_message,
                created_at=datetime.now(tz=UTC),
                reply_to=reply_to,
            )
        )

    def get_request(self, request_id: UUID) -> RequestRecord | None:
        for record in self.records:
            if record.id == request_id:
                return record
        return None

    def update_status(
        self,
        request_id: UUID,
        status: OutcomeStatus,
        error_message: str | None = None,
    ) -> RequestRecord | None:
        for position, record in enumerate(self.records):
            if record.id == request_id:
                updated = replace(record, status=status, error_message=error_message)
                self.records[position] = updated
                return updated
        return None

    def list_requests(self, limit: int = 50) -> list[RequestRecord]:
        return list(reversed(self.records))[:limit]


@dataclass
class InMemorySettingsRepository(SettingsRepository):
    """In-memory key-value settings."""

    values: dict[str, str] = field(default_factory=dict)

    def get_setting(self, key: str) -> str | None:
        return self.values.get(key)

    def set_setting(self, key: str, value: str) -> None:
        self.values[key] = value


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None

    async def send_message(self, chat_id: int, text: str) -> None:
        self.messages.append((chat_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button


@dataclass
class FakeTransport:
    """Records pushed replies."""

    sent: list[tuple[str, str]] = field(default_factory=list)

    async def send(self, recipient_id: str, text: str) -> None:
        self.sent.append((recipient_id, text))


@dataclass
class FakeCatalog:
    """Catalog with canned results and optional failures."""

    results: list[Candidate] = field(default_factory=list)
    subunits: list[Subunit] = field(default_factory=list)
    search_error: Exception | None = None
    subunit_error: Exception | None = None
    searches: list[tuple[MediaKind, str]] = field(default_factory=list)
    subunit_calls: list[Candidate] = field(default_factory=list)

    async def search(self, kind: MediaKind, query: str) -> list[Candidate]:
        self.searches.append((kind, query))
        if self.search_error is not None:
            raise self.search_error
        return list(self.results)

    async def fetch_subunits(self, candidate: Candidate) -> list[Subunit]:
        self.subunit_calls.append(candidate)
        if self.subunit_error is not None:
            raise self.subunit_error
        return list(self.subunits)


@dataclass
class FakeFulfillment:
    """Fulfillment stub recording submissions."""

    result: SubmissionResult = field(
        default_factory=lambda: SubmissionResult(ok=True)
    )
    error: Exception | None = None
    calls: list[tuple[Candidate, list[int] | None]] = field(default_factory=list)

    async def submit(
        self, candidate: Candidate, subunits: list[int] | None
    ) -> SubmissionResult:
        self.calls.append((candidate, subunits))
        if self.error is not None:
            raise self.error
        return self.result


@dataclass
class FakeOverseerrClient(OverseerrClient):
    """Fake Overseerr client with in-memory responses."""

    search_payload: dict[str, object] = field(default_factory=lambda: {"results": []})
    tv_payload: dict[str, object] = field(default_factory=lambda: {"seasons": []})
    radarr_servers: list[dict[str, object]] = field(
        default_factory=lambda: [
            {
                "id": 0,
                "isDefault": True,
                "is4k": False,
                "activeProfileId": 4,
                "activeDirectory": "/movies",
            }
        ]
    )
    sonarr_servers: list[dict[str, object]] = field(
        default_factory=lambda: [
            {
                "id": 1,
                "isDefault": True,
                "is4k": False,
                "activeProfileId": 6,
                "activeDirectory": "/tv",
            }
        ]
    )
    search_failures: int = 0
    search_calls: list[str] = field(default_factory=list)
    requests: list[dict[str, object]] = field(default_factory=list)

    async def search(self, query: str, page: int = 1) -> dict[str, object]:
        self.search_calls.append(query)
        if self.search_failures > 0:
            self.search_failures -= 1
            raise RuntimeError("overseerr unavailable")
        return self.search_payload

    async def get_tv(self, tmdb_id: int) -> dict[str, object]:
        return self.tv_payload

    async def list_radarr_servers(self) -> list[dict[str, object]]:
        return self.radarr_servers

    async def list_sonarr_servers(self) -> list[dict[str, object]]:
        return self.sonarr_servers

    async def create_request(self, payload: dict[str, object]) -> dict[str, object]:
        self.requests.append(payload)
        return {"id": len(self.requests), "status": 1}


def movie(title: str = "Inception", year: int | None = 2010, **kwargs) -> Candidate:
    """Build a movie candidate."""
    return Candidate(
        title=title,
        kind=MediaKind.MOVIE,
        year=year,
        overview=kwargs.pop("overview", "A thief who steals corporate secrets."),
        tmdb_id=kwargs.pop("tmdb_id", 27205),
        **kwargs,
    )


def series(title: str = "Breaking Bad", year: int | None = 2008, **kwargs) -> Candidate:
    """Build a series candidate."""
    return Candidate(
        title=title,
        kind=MediaKind.SERIES,
        year=year,
        overview=kwargs.pop("overview", "A chemistry teacher turns to crime."),
        tmdb_id=kwargs.pop("tmdb_id", 1396),
        tvdb_id=kwargs.pop("tvdb_id", 81189),
        **kwargs,
    )


@dataclass
class ConversationHarness:
    """A conversation service wired to fakes."""

    service: ConversationService
    sessions: InMemorySessionRepository
    transport: FakeTransport
    catalog: FakeCatalog
    fulfillment: FakeFulfillment
    history: InMemoryRequestRepository
    settings_repository: InMemorySettingsRepository
    reply_targets: InMemoryCache


def build_harness() -> ConversationHarness:
    """Wire a conversation service to in-memory collaborators."""
    sessions = InMemorySessionRepository()
    transport = FakeTransport()
    catalog = FakeCatalog()
    fulfillment = FakeFulfillment()
    history = InMemoryRequestRepository()
    settings_repository = InMemorySettingsRepository()
    reply_targets = InMemoryCache()
    service = ConversationService(
        session_repository=sessions,
        transport=transport,
        catalog=catalog,
        subunit_lookup=catalog,
        approval_service=ApprovalService(fulfillment=fulfillment, history=history),
        policy_store=PolicyService(settings_repository),
        reply_targets=reply_targets,
    )
    return ConversationHarness(
        service=service,
        sessions=sessions,
        transport=transport,
        catalog=catalog,
        fulfillment=fulfillment,
        history=history,
        settings_repository=settings_repository,
        reply_targets=reply_targets,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        overseerr_base_url="https://overseerr.example.com",
        overseerr_api_key="overseerr-key",
        identity_salt="test-salt",
    )


@pytest.fixture
def harness() -> ConversationHarness:
    return build_harness()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def container(
    settings: Settings,
    harness: ConversationHarness,
    telegram_client: FakeTelegramClient,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        start_command_handler=StartCommandHandler(telegram_client),
        conversation_service=harness.service,
        session_repository=harness.sessions,
        request_repository=harness.history,
        request_review_service=RequestReviewService(
            history=harness.history,
            fulfillment=harness.fulfillment,
            notifier=TelegramTransport(telegram_client),
        ),
        policy_service=PolicyService(harness.settings_repository),
        session_sweeper=SessionSweeper(
            repository=harness.sessions, caches=[harness.reply_targets]
        ),
        close_resources=close_resources,
    )

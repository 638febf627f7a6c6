"""Conversation orchestration: sessions, intents, transitions and replies."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from media_request_bot.domain.approvals import (
    ApprovalOutcome,
    ApprovalPolicy,
    ConfirmedSelection,
    OutcomeStatus,
)
from media_request_bot.domain.intents import (
    CancelIntent,
    ConfirmationIntent,
    Intent,
    MediaRequestIntent,
    SelectionIntent,
    SubunitSelectionIntent,
)
from media_request_bot.domain.sessions import (
    MAX_CANDIDATES,
    Candidate,
    ConversationSession,
    ConversationState,
    MediaKind,
    Subunit,
    cleared_fields,
    new_session,
)
from media_request_bot.services.approvals import ApprovalService
from media_request_bot.services.cache import Cache
from media_request_bot.services.intents import IntentParser
from media_request_bot.services.sessions import SessionRepository
from media_request_bot.services.state_machine import (
    ActionType,
    StateAction,
    StateMachine,
)

_logger = logging.getLogger(__name__)

OVERVIEW_LIMIT = 300

_State = ConversationState

USAGE_TEXT = (
    "I can help you find movies and TV series! Try something like:\n\n"
    '"I want to watch Inception"\n'
    '"Find Breaking Bad series"\n'
    '"Search for The Matrix"'
)
CANCELLED_TEXT = "Request cancelled. Send a new message to start over."
CANNOT_CANCEL_TEXT = (
    "Cannot cancel while processing. "
    "Please wait for the current request to complete."
)
SEARCH_WAIT_TEXT = "Please wait while I search for results..."
PROCESSING_WAIT_TEXT = "Please wait while I submit your request..."
RETRY_TEXT = "Something went wrong. Please try again."
CONFIRM_PROMPT_TEXT = "Reply YES to confirm or NO to cancel."


class Transport(Protocol):
    """Outbound side of the chat channel."""

    async def send(self, recipient_id: str, text: str) -> None:
        """Deliver a text message to a recipient."""


class CatalogSearch(Protocol):
    """Catalog lookup used to build candidate lists."""

    async def search(self, kind: MediaKind, query: str) -> list[Candidate]:
        """Return candidates for a query."""


class SubunitLookup(Protocol):
    """Season lookup for multi-part candidates."""

    async def fetch_subunits(self, candidate: Candidate) -> list[Subunit]:
        """Return the addressable subunits of a candidate."""


class PolicyStore(Protocol):
    """Source of the system-wide approval policy."""

    def get_approval_policy(self) -> ApprovalPolicy:
        """Return the current policy."""


@dataclass(frozen=True)
class ConversationReply:
    """Reply produced for an inbound message or a completion callback."""

    text: str
    state: ConversationState
    session_id: UUID


@dataclass
class ConversationService:
    """Drives one conversation per sender from request to submission.

    Search and submission run as background tasks. Their completions come back
    through ``on_search_complete``/``on_search_failed`` and
    ``on_submission_complete``, which reload the session by id and drop the
    result if the session has moved on. Replies for those callbacks are pushed
    through the transport to the target recorded for the session.
    """

    session_repository: SessionRepository
    transport: Transport
    catalog: CatalogSearch
    subunit_lookup: SubunitLookup
    approval_service: ApprovalService
    policy_store: PolicyStore
    reply_targets: Cache
    intent_parser: IntentParser = field(default_factory=IntentParser)
    state_machine: StateMachine = field(default_factory=StateMachine)
    session_ttl_seconds: int = 300
    _tasks: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    async def process_message(
        self, sender_hash: str, text: str, reply_to: int | str | None = None
    ) -> ConversationReply:
        """Handle one inbound message and return the synchronous reply."""
        session = self._load_or_create(sender_hash)
        if reply_to is not None:
            self.reply_targets.set(
                str(session.id), str(reply_to), ttl_seconds=self.session_ttl_seconds
            )
        intent = self.intent_parser.parse(text, session.state)
        _logger.info(
            "Processing message: session=%s state=%s intent=%s",
            session.id,
            session.state.value,
            type(intent).__name__,
        )

        if isinstance(intent, CancelIntent):
            return self._cancel(session)

        handlers: dict[
            ConversationState,
            Callable[[ConversationSession, Intent], Awaitable[ConversationReply]],
        ] = {
            _State.IDLE: self._handle_idle,
            _State.SEARCHING: self._handle_searching,
            _State.AWAITING_SELECTION: self._handle_selection,
            _State.AWAITING_SUBUNIT_SELECTION: self._handle_subunit_selection,
            _State.AWAITING_CONFIRMATION: self._handle_confirmation,
            _State.PROCESSING: self._handle_processing,
        }
        return await handlers[session.state](session, intent)

    async def on_search_complete(
        self, session_id: UUID, results: list[Candidate]
    ) -> ConversationReply | None:
        """Apply search results to a session that is still searching."""
        session = self._load_expected(session_id, _State.SEARCHING, "search result")
        if session is None:
            return None
        candidates = list(results)[:MAX_CANDIDATES]
        result = self.state_machine.process_action(
            session.state,
            StateAction(ActionType.SEARCH_COMPLETED, result_count=len(candidates)),
        )
        if not result.valid:
            return None

        if not candidates:
            self._save(session.id, cleared_fields())
            text = (
                f'No matches found for "{session.query}".\n\n'
                "Try a different title or check the spelling."
            )
        else:
            self._save(
                session.id,
                {"state": result.new_state, "candidates": candidates},
            )
            text = format_candidates(candidates)
        await self._push(session.id, text)
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def on_search_failed(self, session_id: UUID) -> ConversationReply | None:
        """Reset a searching session after the catalog call failed."""
        session = self._load_expected(session_id, _State.SEARCHING, "search failure")
        if session is None:
            return None
        result = self.state_machine.process_action(
            session.state, StateAction(ActionType.SEARCH_FAILED)
        )
        if not result.valid:
            return None
        self._save(session.id, cleared_fields())
        text = "Sorry, the search failed. Please try again in a moment."
        await self._push(session.id, text)
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def on_submission_complete(
        self, session_id: UUID, outcome: ApprovalOutcome
    ) -> ConversationReply | None:
        """Finish a processing session with the approval outcome."""
        session = self._load_expected(
            session_id, _State.PROCESSING, "submission result"
        )
        if session is None:
            return None
        succeeded = outcome.status in {OutcomeStatus.SUBMITTED, OutcomeStatus.PENDING}
        action = (
            ActionType.PROCESSING_COMPLETED
            if succeeded
            else ActionType.PROCESSING_FAILED
        )
        result = self.state_machine.process_action(session.state, StateAction(action))
        if not result.valid:
            return None
        self._save(session.id, cleared_fields())
        text = format_outcome(outcome, session.selected_candidate)
        await self._push(session.id, text)
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def join_background_tasks(self) -> None:
        """Wait for every in-flight search and submission task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _handle_idle(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        if not isinstance(intent, MediaRequestIntent):
            return _reply(session, USAGE_TEXT)
        result = self.state_machine.process_action(
            session.state, StateAction(ActionType.START_SEARCH)
        )
        if not result.valid:
            return _reply(session, RETRY_TEXT)

        self._save(
            session.id,
            {
                "state": result.new_state,
                "media_kind": intent.kind,
                "query": intent.query,
            },
        )
        self._spawn(self._run_search(session.id, intent.kind, intent.query))
        _logger.info(
            "Started search: session=%s kind=%s", session.id, intent.kind.value
        )
        return ConversationReply(
            text=(
                f'Searching for {_kind_label(intent.kind)}: "{intent.query}"...'
                "\n\nPlease wait..."
            ),
            state=result.new_state,
            session_id=session.id,
        )

    async def _handle_searching(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        return _reply(session, SEARCH_WAIT_TEXT)

    async def _handle_processing(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        return _reply(session, PROCESSING_WAIT_TEXT)

    async def _handle_selection(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        candidates = session.candidates or []
        if not isinstance(intent, SelectionIntent):
            return _reply(
                session,
                f"Please select a number from the list (1-{len(candidates)}), "
                "or reply CANCEL to start over.",
            )
        if not 1 <= intent.number <= len(candidates):
            return _reply(
                session, f"Please choose a number between 1 and {len(candidates)}."
            )

        index = intent.number - 1
        candidate = candidates[index]
        subunits: list[Subunit] = []
        if candidate.kind == MediaKind.SERIES:
            try:
                subunits = await self.subunit_lookup.fetch_subunits(candidate)
            except Exception:
                _logger.exception(
                    "Season lookup failed: session=%s tmdb_id=%s",
                    session.id,
                    candidate.tmdb_id,
                )
                return self._reset(
                    session,
                    f'Sorry, I could not load the seasons for "{candidate.title}". '
                    "Please try again later.",
                )

        result = self.state_machine.process_action(
            session.state,
            StateAction(ActionType.SELECT_RESULT, has_subunits=bool(subunits)),
        )
        if not result.valid:
            return _reply(session, RETRY_TEXT)

        changes: dict[str, object] = {
            "state": result.new_state,
            "selected_index": index,
            "selected_candidate": candidate,
        }
        if subunits:
            candidate = candidate.model_copy(update={"subunit_count": len(subunits)})
            changes["selected_candidate"] = candidate
            changes["available_subunits"] = subunits
            text = format_subunits(candidate, subunits)
        else:
            text = format_confirmation(candidate, None)
        self._save(session.id, changes)
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def _handle_subunit_selection(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        available = [subunit.number for subunit in session.available_subunits or []]
        if isinstance(intent, SubunitSelectionIntent):
            requested = available if intent.all_units else list(intent.numbers)
        elif isinstance(intent, SelectionIntent):
            requested = [intent.number]
        else:
            requested = []

        missing = [number for number in requested if number not in available]
        if not requested or missing:
            valid = ", ".join(str(number) for number in available)
            prefix = (
                f"Season {', '.join(str(number) for number in missing)} "
                "is not available. "
                if missing
                else ""
            )
            return _reply(
                session,
                f"{prefix}Reply with season numbers from: {valid}, "
                "or ALL for every season.",
            )

        result = self.state_machine.process_action(
            session.state, StateAction(ActionType.SELECT_SUBUNITS)
        )
        if not result.valid:
            return _reply(session, RETRY_TEXT)
        selected = sorted(set(requested))
        self._save(
            session.id, {"state": result.new_state, "selected_subunits": selected}
        )
        candidate = session.selected_candidate
        text = (
            format_confirmation(candidate, selected)
            if candidate is not None
            else CONFIRM_PROMPT_TEXT
        )
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def _handle_confirmation(
        self, session: ConversationSession, intent: Intent
    ) -> ConversationReply:
        if not isinstance(intent, ConfirmationIntent):
            return _reply(session, CONFIRM_PROMPT_TEXT)
        if not intent.confirmed:
            return self._cancel(session)

        candidate = session.selected_candidate
        if candidate is None:
            _logger.error("Confirmed session has no selection: session=%s", session.id)
            return self._reset(session, "An error occurred. Please start over.")
        try:
            policy = self.policy_store.get_approval_policy()
        except Exception:
            _logger.exception("Failed to read approval policy: session=%s", session.id)
            return self._reset(
                session, "Sorry, I could not process your request. Please try again."
            )

        result = self.state_machine.process_action(
            session.state, StateAction(ActionType.CONFIRM)
        )
        if not result.valid:
            return _reply(session, RETRY_TEXT)
        self._save(session.id, {"state": result.new_state})

        target = self.reply_targets.get(str(session.id))
        selection = ConfirmedSelection(
            session_id=session.id,
            sender_hash=session.sender_hash,
            candidate=candidate,
            subunits=session.selected_subunits,
            reply_to=str(target) if target is not None else None,
        )
        self._spawn(self._run_submission(selection, policy))
        _logger.info(
            "Started submission: session=%s policy=%s", session.id, policy.value
        )
        if policy == ApprovalPolicy.AUTO_DENY:
            text = "Processing your request..."
        else:
            text = (
                "Submitting your request...\n\n"
                "Please wait while I add this to your library."
            )
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    async def _run_search(self, session_id: UUID, kind: MediaKind, query: str) -> None:
        try:
            results = await self.catalog.search(kind, query)
        except Exception:
            _logger.exception("Catalog search failed: session=%s", session_id)
            await self.on_search_failed(session_id)
            return
        await self.on_search_complete(session_id, results)

    async def _run_submission(
        self, selection: ConfirmedSelection, policy: ApprovalPolicy
    ) -> None:
        try:
            outcome = await self.approval_service.decide(selection, policy)
        except Exception:
            _logger.exception(
                "Approval decision failed: session=%s", selection.session_id
            )
            outcome = ApprovalOutcome(
                status=OutcomeStatus.FAILED,
                error_message="An unexpected error occurred.",
            )
        await self.on_submission_complete(selection.session_id, outcome)

    def _spawn(self, coro: Coroutine[object, object, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _push(self, session_id: UUID, text: str) -> None:
        target = self.reply_targets.get(str(session_id))
        if target is None:
            _logger.warning("No reply target for session=%s", session_id)
            return
        try:
            await self.transport.send(str(target), text)
        except Exception:
            _logger.exception("Failed to push reply: session=%s", session_id)

    def _cancel(self, session: ConversationSession) -> ConversationReply:
        result = self.state_machine.process_action(
            session.state, StateAction(ActionType.CANCEL)
        )
        if not result.valid:
            return _reply(session, CANNOT_CANCEL_TEXT)
        self._save(session.id, cleared_fields())
        return ConversationReply(
            text=CANCELLED_TEXT, state=result.new_state, session_id=session.id
        )

    def _reset(self, session: ConversationSession, text: str) -> ConversationReply:
        result = self.state_machine.transition(session.state, _State.IDLE)
        self._save(session.id, cleared_fields())
        return ConversationReply(
            text=text, state=result.new_state, session_id=session.id
        )

    def _load_or_create(self, sender_hash: str) -> ConversationSession:
        session = self.session_repository.get_active_session(sender_hash)
        if session is not None:
            return session
        created = self.session_repository.create_session(
            new_session(sender_hash, timedelta(seconds=self.session_ttl_seconds))
        )
        _logger.info("Created conversation session: session=%s", created.id)
        return created

    def _load_expected(
        self, session_id: UUID, expected: ConversationState, event: str
    ) -> ConversationSession | None:
        session = self.session_repository.get_session(session_id)
        if session is None or session.state != expected:
            _logger.warning(
                "Dropping stale %s: session=%s state=%s",
                event,
                session_id,
                session.state.value if session else "missing",
            )
            return None
        return session

    def _save(
        self, session_id: UUID, changes: dict[str, object]
    ) -> ConversationSession | None:
        now = datetime.now(tz=UTC)
        updated = self.session_repository.update_session(
            session_id,
            {
                **changes,
                "updated_at": now,
                "expires_at": now + timedelta(seconds=self.session_ttl_seconds),
            },
        )
        if updated is None:
            _logger.warning("Session disappeared during update: session=%s", session_id)
        return updated


def _reply(session: ConversationSession, text: str) -> ConversationReply:
    return ConversationReply(text=text, state=session.state, session_id=session.id)


def _kind_label(kind: MediaKind) -> str:
    if kind == MediaKind.MOVIE:
        return "movie"
    if kind == MediaKind.SERIES:
        return "series"
    return "movies and series"


def _kind_marker(kind: MediaKind) -> str:
    return "[Series]" if kind == MediaKind.SERIES else "[Movie]"


def _headline(candidate: Candidate) -> str:
    year = f" ({candidate.year})" if candidate.year else ""
    return f"{_kind_marker(candidate.kind)} {candidate.title}{year}"


def truncate_overview(overview: str | None, limit: int = OVERVIEW_LIMIT) -> str:
    """Shorten an overview to the display budget."""
    if not overview:
        return ""
    text = overview.strip()
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def format_candidates(candidates: list[Candidate]) -> str:
    """Numbered result listing; ordinals match list positions 1:1."""
    lines = []
    for ordinal, candidate in enumerate(candidates, start=1):
        line = f"{ordinal}. {_headline(candidate)}"
        if candidate.subunit_count:
            plural = "s" if candidate.subunit_count > 1 else ""
            line += f" - {candidate.subunit_count} season{plural}"
        overview = truncate_overview(candidate.overview)
        if overview:
            line += f"\n   {overview}"
        lines.append(line)
    count = len(candidates)
    plural = "s" if count > 1 else ""
    return (
        f"Found {count} result{plural}:\n\n"
        + "\n\n".join(lines)
        + f"\n\nReply with a number (1-{count}) to select, or CANCEL to start over."
    )


def format_subunits(candidate: Candidate, subunits: list[Subunit]) -> str:
    """Season listing for a series."""
    lines = []
    for subunit in subunits:
        line = f"{subunit.number}. {subunit.name or f'Season {subunit.number}'}"
        if subunit.episode_count:
            line += f" ({subunit.episode_count} episodes)"
        lines.append(line)
    return (
        f"{_headline(candidate)} has {len(subunits)} season"
        f"{'s' if len(subunits) > 1 else ''}:\n\n"
        + "\n".join(lines)
        + '\n\nReply with season numbers (e.g. "1,2"), ALL for every season, '
        "or CANCEL to start over."
    )


def format_confirmation(candidate: Candidate, subunits: list[int] | None) -> str:
    """Confirmation prompt for a selected candidate."""
    seasons = ""
    if subunits:
        seasons = f"\nSeasons: {', '.join(str(number) for number in subunits)}"
    overview = truncate_overview(candidate.overview) or "No description available."
    return (
        f"You selected:\n\n{_headline(candidate)}{seasons}\n\n{overview}\n\n"
        f"{CONFIRM_PROMPT_TEXT}"
    )


def format_outcome(outcome: ApprovalOutcome, candidate: Candidate | None) -> str:
    """User-facing text for an approval outcome."""
    headline = _headline(candidate) if candidate is not None else "Your request"
    if outcome.status == OutcomeStatus.SUBMITTED:
        return (
            f"Request submitted successfully!\n\n{headline} has been sent to the "
            "library for download."
        )
    if outcome.status == OutcomeStatus.PENDING:
        return (
            f"Your request is pending approval.\n\n{headline}\n\n"
            "An administrator will review it soon."
        )
    if outcome.status == OutcomeStatus.REJECTED:
        return (
            f"Your request was automatically declined.\n\n{headline}\n\n"
            "Reason: automatic approval is currently disabled."
        )
    return (
        f"Failed to submit your request.\n\n{headline}\n\n"
        f"{outcome.error_message or 'An error occurred. Please try again later.'}"
    )

"""Conversation state machine with a closed transition table."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from media_request_bot.domain.sessions import ConversationState

_logger = logging.getLogger(__name__)

_S = ConversationState

_ALLOWED_TARGETS: dict[ConversationState, frozenset[ConversationState]] = {
    _S.IDLE: frozenset({_S.SEARCHING, _S.IDLE}),
    _S.SEARCHING: frozenset({_S.AWAITING_SELECTION, _S.IDLE}),
    _S.AWAITING_SELECTION: frozenset(
        {_S.AWAITING_CONFIRMATION, _S.AWAITING_SUBUNIT_SELECTION, _S.IDLE}
    ),
    _S.AWAITING_SUBUNIT_SELECTION: frozenset({_S.AWAITING_CONFIRMATION, _S.IDLE}),
    _S.AWAITING_CONFIRMATION: frozenset({_S.PROCESSING, _S.IDLE}),
    _S.PROCESSING: frozenset({_S.IDLE}),
}

_DESCRIPTIONS = {
    _S.IDLE: "No active conversation",
    _S.SEARCHING: "Searching the catalog",
    _S.AWAITING_SELECTION: "Waiting for the user to pick a result",
    _S.AWAITING_SUBUNIT_SELECTION: "Waiting for the user to pick seasons",
    _S.AWAITING_CONFIRMATION: "Waiting for the user to confirm",
    _S.PROCESSING: "Submitting the request",
}

_EXPECTED_INPUT = {
    _S.IDLE: 'A title request, e.g. "I want to watch Inception"',
    _S.SEARCHING: "Nothing, please wait",
    _S.AWAITING_SELECTION: "A result number or CANCEL",
    _S.AWAITING_SUBUNIT_SELECTION: 'Season numbers like "1,2", ALL or CANCEL',
    _S.AWAITING_CONFIRMATION: "YES to confirm or NO to cancel",
    _S.PROCESSING: "Nothing, please wait",
}


class ActionType(Enum):
    """Events that drive the conversation."""

    START_SEARCH = "start_search"
    SEARCH_COMPLETED = "search_completed"
    SEARCH_FAILED = "search_failed"
    SELECT_RESULT = "select_result"
    SELECT_SUBUNITS = "select_subunits"
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    PROCESSING_COMPLETED = "processing_completed"
    PROCESSING_FAILED = "processing_failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class StateAction:
    """An action plus the facts its transition depends on."""

    type: ActionType
    result_count: int = 0
    has_subunits: bool = False


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of applying an action to a state."""

    new_state: ConversationState
    valid: bool
    error: str | None = None


class StateMachine:
    """Validates and applies conversation transitions.

    Pure: no I/O, no stored state. Invalid actions never change the state and
    come back with ``valid=False`` and a readable reason.
    """

    def __init__(self) -> None:
        self._handlers: dict[
            ActionType,
            Callable[[ConversationState, StateAction], TransitionResult],
        ] = {
            ActionType.START_SEARCH: self._start_search,
            ActionType.SEARCH_COMPLETED: self._search_completed,
            ActionType.SEARCH_FAILED: self._search_failed,
            ActionType.SELECT_RESULT: self._select_result,
            ActionType.SELECT_SUBUNITS: self._select_subunits,
            ActionType.CONFIRM: self._confirm,
            ActionType.REJECT: self._cancel,
            ActionType.CANCEL: self._cancel,
            ActionType.PROCESSING_COMPLETED: self._processing_done,
            ActionType.PROCESSING_FAILED: self._processing_done,
            ActionType.TIMEOUT: self._timeout,
        }

    def can_transition(
        self, current: ConversationState, target: ConversationState
    ) -> bool:
        """Return True when the table allows current -> target."""
        return target in _ALLOWED_TARGETS[current]

    def transition(
        self, current: ConversationState, target: ConversationState
    ) -> TransitionResult:
        """Move to target if the table allows it."""
        if not self.can_transition(current, target):
            _logger.warning(
                "Invalid state transition attempted: %s -> %s",
                current.value,
                target.value,
            )
            return TransitionResult(
                new_state=current,
                valid=False,
                error=f"Cannot transition from {current.value} to {target.value}",
            )
        _logger.debug("State transition: %s -> %s", current.value, target.value)
        return TransitionResult(new_state=target, valid=True)

    def process_action(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        """Resolve the next state for an action."""
        handler = self._handlers.get(action.type)
        if handler is None:
            result = _rejected(current, "Unknown action type")
        else:
            result = handler(current, action)
        if not result.valid:
            _logger.warning(
                "Rejected action: state=%s action=%s reason=%s",
                current.value,
                action.type.value,
                result.error,
            )
        return result

    def describe(self, state: ConversationState) -> str:
        """Human-readable state description."""
        return _DESCRIPTIONS[state]

    def can_cancel(self, state: ConversationState) -> bool:
        """Cancellation is refused mid-submission."""
        return state != _S.PROCESSING

    def requires_user_input(self, state: ConversationState) -> bool:
        """Return True when the conversation is waiting on the user."""
        return state in {
            _S.AWAITING_SELECTION,
            _S.AWAITING_SUBUNIT_SELECTION,
            _S.AWAITING_CONFIRMATION,
        }

    def expected_input(self, state: ConversationState) -> str:
        """Hint for what the user should send next."""
        return _EXPECTED_INPUT[state]

    def _start_search(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.IDLE:
            return _rejected(current, "Can only start a search from IDLE")
        return self.transition(current, _S.SEARCHING)

    def _search_completed(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.SEARCHING:
            return _rejected(current, "Can only complete a search from SEARCHING")
        if action.result_count <= 0:
            return self.transition(current, _S.IDLE)
        return self.transition(current, _S.AWAITING_SELECTION)

    def _search_failed(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.SEARCHING:
            return _rejected(current, "Can only fail a search from SEARCHING")
        return self.transition(current, _S.IDLE)

    def _select_result(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.AWAITING_SELECTION:
            return _rejected(
                current, "Can only select a result from AWAITING_SELECTION"
            )
        if action.has_subunits:
            return self.transition(current, _S.AWAITING_SUBUNIT_SELECTION)
        return self.transition(current, _S.AWAITING_CONFIRMATION)

    def _select_subunits(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.AWAITING_SUBUNIT_SELECTION:
            return _rejected(
                current, "Can only select seasons from AWAITING_SUBUNIT_SELECTION"
            )
        return self.transition(current, _S.AWAITING_CONFIRMATION)

    def _confirm(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.AWAITING_CONFIRMATION:
            return _rejected(current, "Can only confirm from AWAITING_CONFIRMATION")
        return self.transition(current, _S.PROCESSING)

    def _cancel(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current == _S.PROCESSING:
            return _rejected(current, "Cannot cancel while processing")
        return self.transition(current, _S.IDLE)

    def _processing_done(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        if current != _S.PROCESSING:
            return _rejected(
                current, "Can only complete processing from PROCESSING"
            )
        return self.transition(current, _S.IDLE)

    def _timeout(
        self, current: ConversationState, action: StateAction
    ) -> TransitionResult:
        return self.transition(current, _S.IDLE)


def _rejected(current: ConversationState, error: str) -> TransitionResult:
    return TransitionResult(new_state=current, valid=False, error=error)

"""Typed intents produced by the intent parser."""

from dataclasses import dataclass

from media_request_bot.domain.sessions import MediaKind


@dataclass(frozen=True)
class CancelIntent:
    """User wants to abandon the current request."""


@dataclass(frozen=True)
class MediaRequestIntent:
    """User asked for a title."""

    kind: MediaKind
    query: str


@dataclass(frozen=True)
class SelectionIntent:
    """User picked a 1-based entry from a list."""

    number: int


@dataclass(frozen=True)
class SubunitSelectionIntent:
    """User picked seasons; numbers is empty when all_units is set."""

    all_units: bool = False
    numbers: tuple[int, ...] = ()


@dataclass(frozen=True)
class ConfirmationIntent:
    """User answered a yes/no prompt."""

    confirmed: bool


@dataclass(frozen=True)
class UnknownIntent:
    """Nothing recognizable."""


Intent = (
    CancelIntent
    | MediaRequestIntent
    | SelectionIntent
    | SubunitSelectionIntent
    | ConfirmationIntent
    | UnknownIntent
)

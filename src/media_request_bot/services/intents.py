"""Keyword-based intent parsing for inbound chat messages."""

import logging
import re
from dataclasses import dataclass, field

from media_request_bot.domain.intents import (
    CancelIntent,
    ConfirmationIntent,
    Intent,
    MediaRequestIntent,
    SelectionIntent,
    SubunitSelectionIntent,
    UnknownIntent,
)
from media_request_bot.domain.sessions import ConversationState, MediaKind

_logger = logging.getLogger(__name__)

_NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
    "twenty": 20,
}

_SELECTION_DIGITS = re.compile(r"^(\d{1,2})$")
_SUBUNIT_LIST = re.compile(r"^\d+(?:\s*,\s*\d+)*$")
_EDGE_PUNCTUATION = re.compile(r"^\W+|[^\w)]+$")
_YEAR_IN_PARENS = re.compile(r"^(.+?)\s*\((\d{4})\)\s*$")
_YEAR_AT_END = re.compile(r"^(.+?)\s+(\d{4})\s*$")


@dataclass(frozen=True)
class KeywordVocabulary:
    """Word and phrase sets for each canonical intent tag."""

    movie: tuple[str, ...]
    series: tuple[str, ...]
    cancel: tuple[str, ...]
    confirm: tuple[str, ...]
    filler: tuple[str, ...]

    @classmethod
    def from_mapping(cls, mapping: dict[str, list[str]]) -> "KeywordVocabulary":
        """Build a vocabulary from a tag -> phrases mapping."""
        return cls(
            movie=tuple(mapping.get("movie", [])),
            series=tuple(mapping.get("series", [])),
            cancel=tuple(mapping.get("cancel", [])),
            confirm=tuple(mapping.get("confirm", [])),
            filler=tuple(mapping.get("filler", [])),
        )


DEFAULT_VOCABULARY = KeywordVocabulary(
    movie=(
        "movie",
        "film",
        "watch",
        "find",
        "search",
        "looking for",
        "want to see",
        "want to watch",
        "add movie",
        "get movie",
        "download movie",
    ),
    series=(
        "series",
        "show",
        "tv",
        "tv show",
        "television",
        "episode",
        "season",
        "add series",
        "add show",
        "get series",
        "get show",
        "download series",
        "download show",
    ),
    cancel=("cancel", "stop", "no", "nevermind", "never mind", "quit", "exit"),
    confirm=(
        "yes",
        "yeah",
        "yep",
        "sure",
        "ok",
        "okay",
        "confirm",
        "correct",
        "right",
        "yup",
    ),
    filler=(
        "i want to watch",
        "i want to see",
        "i want",
        "looking for",
        "search for",
        "find",
        "add",
        "get",
        "download",
        "watch",
        "see",
    ),
)


def _word_pattern(phrases: tuple[str, ...]) -> re.Pattern[str] | None:
    if not phrases:
        return None
    # Longest first so multi-word phrases win over their prefixes.
    ordered = sorted(set(phrases), key=len, reverse=True)
    alternatives = "|".join(re.escape(phrase) for phrase in ordered)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


@dataclass
class IntentParser:
    """Map raw message text to a typed intent."""

    vocabulary: KeywordVocabulary = DEFAULT_VOCABULARY
    _movie: re.Pattern[str] | None = field(init=False, repr=False)
    _series: re.Pattern[str] | None = field(init=False, repr=False)
    _cancel: re.Pattern[str] | None = field(init=False, repr=False)
    _confirm: re.Pattern[str] | None = field(init=False, repr=False)
    _removable: re.Pattern[str] | None = field(init=False, repr=False)

    def __post_init__(self) -> None:
        vocab = self.vocabulary
        self._movie = _word_pattern(vocab.movie)
        self._series = _word_pattern(vocab.series)
        self._cancel = _word_pattern(vocab.cancel)
        self._confirm = _word_pattern(vocab.confirm)
        self._removable = _word_pattern(vocab.filler + vocab.movie + vocab.series)

    def parse(
        self, text: str, current_state: ConversationState | None = None
    ) -> Intent:
        """Classify a message, using the conversation state for context."""
        raw = text.strip()
        normalized = raw.lower()

        if _matches(self._cancel, normalized):
            _logger.debug("Detected cancel intent")
            return CancelIntent()

        if current_state == ConversationState.AWAITING_SUBUNIT_SELECTION:
            subunits = _parse_subunits(normalized)
            if subunits is not None:
                _logger.debug("Detected subunit selection: %s", subunits)
                return subunits

        number = _parse_selection(normalized)
        if number is not None:
            _logger.debug("Detected selection: %s", number)
            return SelectionIntent(number=number)

        has_confirm = _matches(self._confirm, normalized)
        # Cancel keywords already returned above, so only confirm can match here.
        if has_confirm:
            return ConfirmationIntent(confirmed=True)

        request = self._parse_media_request(raw, normalized)
        if request is not None:
            _logger.debug(
                "Detected media request: kind=%s query=%s",
                request.kind.value,
                request.query,
            )
            return request

        return UnknownIntent()

    def _parse_media_request(
        self, raw: str, normalized: str
    ) -> MediaRequestIntent | None:
        has_movie = _matches(self._movie, normalized)
        has_series = _matches(self._series, normalized)
        if has_movie and not has_series:
            kind = MediaKind.MOVIE
        elif has_series and not has_movie:
            kind = MediaKind.SERIES
        else:
            kind = MediaKind.BOTH

        query = raw
        if self._removable is not None:
            query = self._removable.sub(" ", query)
        query = " ".join(query.split())
        query = _EDGE_PUNCTUATION.sub("", query)
        if len(query) < 2 or query.isdigit():
            return None
        return MediaRequestIntent(kind=kind, query=query)


def extract_title(query: str) -> tuple[str, int | None]:
    """Split a trailing release year off a query like 'Dune (2021)'."""
    for pattern in (_YEAR_IN_PARENS, _YEAR_AT_END):
        match = pattern.match(query)
        if match:
            return match.group(1).strip(), int(match.group(2))
    return query.strip(), None


def _matches(pattern: re.Pattern[str] | None, text: str) -> bool:
    return pattern is not None and pattern.search(text) is not None


def _parse_selection(text: str) -> int | None:
    match = _SELECTION_DIGITS.match(text)
    if match:
        value = int(match.group(1))
        return value if 1 <= value <= 99 else None
    return _NUMBER_WORDS.get(text)


def _parse_subunits(text: str) -> SubunitSelectionIntent | None:
    if text == "all":
        return SubunitSelectionIntent(all_units=True)
    if not _SUBUNIT_LIST.match(text):
        return None
    numbers = sorted({int(chunk) for chunk in text.split(",") if int(chunk) > 0})
    if not numbers:
        return None
    return SubunitSelectionIntent(numbers=tuple(numbers))

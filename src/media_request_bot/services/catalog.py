"""Catalog search and season lookup backed by Overseerr."""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from media_request_bot.adapters.overseerr_client import OverseerrClient
from media_request_bot.domain.sessions import (
    MAX_CANDIDATES,
    Candidate,
    MediaKind,
    Subunit,
)
from media_request_bot.services.cache import Cache
from media_request_bot.services.intents import extract_title

_logger = logging.getLogger(__name__)

_KIND_BY_MEDIA_TYPE = {"movie": MediaKind.MOVIE, "tv": MediaKind.SERIES}

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@dataclass
class CatalogService:
    """Searches the catalog and looks up seasons, with caching and a retry."""

    client: OverseerrClient
    cache: Cache
    max_results: int = 5
    search_ttl_seconds: int = 300
    subunit_ttl_seconds: int = 3600
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def search(self, kind: MediaKind, query: str) -> list[Candidate]:
        """Return normalized candidates for a query, newest first."""
        cache_key = f"catalog:search:{kind.value}:{' '.join(query.lower().split())}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        title, year = extract_title(query)
        payload = await self._call_with_retry(
            lambda: self.client.search(title), action="search"
        )
        candidates = [
            candidate
            for candidate in (
                _normalize_result(item) for item in payload.get("results", [])
            )
            if candidate is not None and _kind_matches(kind, candidate.kind)
        ]
        if year is not None:
            same_year = [item for item in candidates if item.year == year]
            candidates = same_year or candidates
        candidates = _deduplicate(candidates)
        candidates.sort(key=lambda item: (item.year is None, -(item.year or 0)))
        candidates = candidates[: min(self.max_results, MAX_CANDIDATES)]

        self.cache.set(cache_key, candidates, ttl_seconds=self.search_ttl_seconds)
        _logger.info(
            "Catalog search: kind=%s query=%s results=%s",
            kind.value,
            query,
            len(candidates),
        )
        return candidates

    async def fetch_subunits(self, candidate: Candidate) -> list[Subunit]:
        """Return the numbered seasons of a series; specials are skipped."""
        if candidate.kind != MediaKind.SERIES or candidate.tmdb_id is None:
            return []
        cache_key = f"catalog:seasons:{candidate.tmdb_id}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        tmdb_id = candidate.tmdb_id
        payload = await self._call_with_retry(
            lambda: self.client.get_tv(tmdb_id), action=f"get_tv:{tmdb_id}"
        )
        subunits = sorted(
            (
                Subunit(
                    number=season["seasonNumber"],
                    name=season.get("name"),
                    episode_count=season.get("episodeCount"),
                    air_date=season.get("airDate"),
                )
                for season in payload.get("seasons", [])
                if isinstance(season.get("seasonNumber"), int)
                and season["seasonNumber"] > 0
            ),
            key=lambda subunit: subunit.number,
        )
        self.cache.set(cache_key, subunits, ttl_seconds=self.subunit_ttl_seconds)
        return subunits

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[dict[str, object]]]", *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                _logger.warning(
                    "Catalog %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def _status_code_from_exception(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"


def _kind_matches(requested: MediaKind, actual: MediaKind) -> bool:
    return requested == MediaKind.BOTH or requested == actual


def _normalize_result(item: dict[str, object]) -> Candidate | None:
    """Convert an Overseerr search hit; people and untitled hits are dropped."""
    kind = _KIND_BY_MEDIA_TYPE.get(str(item.get("mediaType")))
    if kind is None:
        return None
    if kind == MediaKind.MOVIE:
        title = item.get("title") or item.get("originalTitle")
        date = item.get("releaseDate")
    else:
        title = item.get("name") or item.get("originalName")
        date = item.get("firstAirDate")
    season_count = item.get("numberOfSeasons")
    if not title:
        return None
    media_info = item.get("mediaInfo") or {}
    tmdb_id = item.get("id")
    return Candidate(
        title=str(title),
        kind=kind,
        year=_year_from_date(date),
        overview=item.get("overview") or None,
        poster_path=item.get("posterPath"),
        tmdb_id=tmdb_id if isinstance(tmdb_id, int) else None,
        tvdb_id=media_info.get("tvdbId"),
        imdb_id=media_info.get("imdbId"),
        subunit_count=(
            season_count
            if kind == MediaKind.SERIES and isinstance(season_count, int)
            else None
        ),
    )


def _year_from_date(value: object) -> int | None:
    if isinstance(value, str) and len(value) >= 4 and value[:4].isdigit():
        return int(value[:4])
    return None


def _deduplicate(candidates: list[Candidate]) -> list[Candidate]:
    seen: set[tuple[object, ...]] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        if candidate.tmdb_id is not None:
            key: tuple[object, ...] = (candidate.kind, candidate.tmdb_id)
        else:
            key = (candidate.kind, candidate.title.lower(), candidate.year)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique

"""Request submission through Overseerr."""

import logging
from dataclasses import dataclass

import httpx

from media_request_bot.adapters.overseerr_client import OverseerrClient
from media_request_bot.domain.approvals import SubmissionResult
from media_request_bot.domain.sessions import Candidate, MediaKind

_logger = logging.getLogger(__name__)


@dataclass
class OverseerrFulfillmentService:
    """Submits confirmed candidates to the default Radarr or Sonarr server."""

    client: OverseerrClient
    profile_id: int | None = None
    root_folder: str | None = None

    async def submit(
        self, candidate: Candidate, subunits: list[int] | None
    ) -> SubmissionResult:
        """Create an Overseerr request for a candidate."""
        if candidate.tmdb_id is None:
            return SubmissionResult(
                ok=False,
                error_message="This title has no TMDB id and cannot be requested.",
            )
        is_series = candidate.kind == MediaKind.SERIES
        try:
            servers = (
                await self.client.list_sonarr_servers()
                if is_series
                else await self.client.list_radarr_servers()
            )
            server = _default_server(servers)
            if server is None:
                service = "Sonarr" if is_series else "Radarr"
                return SubmissionResult(
                    ok=False,
                    error_message=f"No {service} server is configured in Overseerr.",
                )
            payload: dict[str, object] = {
                "mediaType": "tv" if is_series else "movie",
                "mediaId": candidate.tmdb_id,
                "is4k": False,
                "serverId": server.get("id"),
                "profileId": self.profile_id or server.get("activeProfileId"),
                "rootFolder": self.root_folder or server.get("activeDirectory"),
            }
            if is_series:
                payload["seasons"] = list(subunits) if subunits else "all"
                if candidate.tvdb_id is not None:
                    payload["tvdbId"] = candidate.tvdb_id
            response = await self.client.create_request(payload)
        except httpx.HTTPStatusError as exc:
            _logger.warning(
                "Overseerr rejected request: title=%s status=%s",
                candidate.title,
                exc.response.status_code,
            )
            return SubmissionResult(
                ok=False,
                error_message=_error_detail(exc.response)
                or f"Overseerr returned HTTP {exc.response.status_code}.",
            )
        except httpx.HTTPError as exc:
            _logger.warning(
                "Overseerr request failed: title=%s error=%s", candidate.title, exc
            )
            return SubmissionResult(
                ok=False, error_message="Could not reach the request service."
            )
        _logger.info(
            "Overseerr request created: title=%s request_id=%s",
            candidate.title,
            response.get("id"),
        )
        return SubmissionResult(ok=True)


def _default_server(servers: list[dict[str, object]]) -> dict[str, object] | None:
    standard = [server for server in servers if not server.get("is4k")]
    for server in standard:
        if server.get("isDefault"):
            return server
    if standard:
        return standard[0]
    return None


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None

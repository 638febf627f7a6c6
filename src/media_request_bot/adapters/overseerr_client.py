"""Overseerr API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class OverseerrClient(Protocol):
    """Interface for Overseerr API interactions."""

    async def search(self, query: str, page: int = 1) -> dict[str, object]:
        """Search movies and series and return raw API data."""

    async def get_tv(self, tmdb_id: int) -> dict[str, object]:
        """Fetch series details, including seasons."""

    async def list_radarr_servers(self) -> list[dict[str, object]]:
        """Return configured Radarr servers."""

    async def list_sonarr_servers(self) -> list[dict[str, object]]:
        """Return configured Sonarr servers."""

    async def create_request(self, payload: dict[str, object]) -> dict[str, object]:
        """Create a media request."""


@dataclass
class HttpxOverseerrClient(OverseerrClient):
    """HTTPX-backed Overseerr client."""

    api_key: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, api_key: str, base_url: str) -> "HttpxOverseerrClient":
        """Create an Overseerr client with a managed httpx session."""
        return cls(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key, "Accept": "application/json"}

    async def search(self, query: str, page: int = 1) -> dict[str, object]:
        """Search movies and series by query."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v1/search",
            params={"query": query, "page": page},
            headers=self._headers,
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def get_tv(self, tmdb_id: int) -> dict[str, object]:
        """Fetch series details by TMDB id."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v1/tv/{tmdb_id}",
            headers=self._headers,
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def list_radarr_servers(self) -> list[dict[str, object]]:
        """Return Radarr servers configured in Overseerr."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v1/settings/radarr",
            headers=self._headers,
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def list_sonarr_servers(self) -> list[dict[str, object]]:
        """Return Sonarr servers configured in Overseerr."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v1/settings/sonarr",
            headers=self._headers,
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def create_request(self, payload: dict[str, object]) -> dict[str, object]:
        """Create a media request."""
        response = await self.http_client.post(
            f"{self.base_url}/api/v1/request",
            json=payload,
            headers=self._headers,
            timeout=30,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

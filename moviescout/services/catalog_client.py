import asyncio
import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from moviescout.core.errors import APIError, CatalogUnavailable, CatalogUnreachable
from moviescout.core.settings import Settings

logger = logging.getLogger(__name__)


class CatalogClient:
    """Thin TMDB wrapper with a per-process response cache.

    Identical endpoint strings are fetched once and served from memory for the
    client's lifetime. There is no TTL and no eviction; callers own retries.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.tmdb_base_url,
            timeout=settings.tmdb_timeout_seconds,
            transport=transport,
        )
        self._cache: dict[str, dict[str, Any]] = {}
        self._min_interval_seconds = 1.0 / max(settings.tmdb_requests_per_second, 0.5)
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def _throttle(self) -> None:
        async with self._lock:
            now = asyncio.get_running_loop().time()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval_seconds:
                await asyncio.sleep(self._min_interval_seconds - elapsed)
            self._last_request_time = asyncio.get_running_loop().time()

    def endpoint_key(self, path: str, params: dict[str, Any] | None = None) -> str:
        merged = {"language": self.settings.tmdb_language}
        if params:
            merged.update(params)
        return f"{path}?{urlencode(sorted(merged.items()))}"

    async def request(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.settings.tmdb_api_key:
            raise APIError("config_error", "TMDB_API_KEY is not set", status_code=500)

        endpoint = self.endpoint_key(path, params)
        cached = self._cache.get(endpoint)
        if cached is not None:
            return cached

        await self._throttle()
        try:
            response = await self._client.get(endpoint, params={"api_key": self.settings.tmdb_api_key})
        except httpx.TransportError as exc:
            logger.warning(
                "Catalog request failed",
                extra={"path": path, "error_type": exc.__class__.__name__},
            )
            raise CatalogUnreachable(path=path, error_type=exc.__class__.__name__) from exc

        if not response.is_success:
            logger.warning(
                "Catalog returned an error status",
                extra={"path": path, "status_code": response.status_code},
            )
            raise CatalogUnavailable(response.status_code, path=path, body=response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Catalog returned a body that is not JSON", extra={"path": path})
            raise CatalogUnavailable(response.status_code, path=path, body=response.text) from exc
        self._cache[endpoint] = payload
        return payload

    async def search_movies(self, query: str, page: int = 1) -> dict[str, Any]:
        return await self.request(
            "/search/movie",
            params={"query": query, "page": page, "include_adult": "false"},
        )

    async def search_people(self, query: str) -> dict[str, Any]:
        return await self.request("/search/person", params={"query": query, "include_adult": "false"})

    async def discover_movies(self, params: dict[str, Any], page: int = 1) -> dict[str, Any]:
        merged = {"include_adult": "false", "include_video": "false", "page": page}
        merged.update(params)
        return await self.request("/discover/movie", params=merged)

    async def fetch_movie(self, movie_id: int) -> dict[str, Any]:
        return await self.request(f"/movie/{movie_id}")

    async def fetch_credits(self, movie_id: int) -> dict[str, Any]:
        return await self.request(f"/movie/{movie_id}/credits")

    async def fetch_watch_providers(self, movie_id: int) -> dict[str, Any]:
        return await self.request(f"/movie/{movie_id}/watch/providers")

    async def fetch_genres(self) -> dict[str, Any]:
        return await self.request("/genre/movie/list")

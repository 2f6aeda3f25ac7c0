import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from moviescout.models.movie import Genre
from moviescout.services.catalog_client import CatalogClient

logger = logging.getLogger(__name__)


def parse_genre(raw: Any) -> Genre | None:
    if not isinstance(raw, dict):
        return None
    genre_id = raw.get("id")
    name = raw.get("name")
    if not isinstance(genre_id, int) or not name:
        return None
    return Genre(id=genre_id, name=str(name).strip())


def unique_genres(genres: Iterable[Genre]) -> list[Genre]:
    seen: set[int] = set()
    output: list[Genre] = []
    for genre in genres:
        if genre.id in seen:
            continue
        seen.add(genre.id)
        output.append(genre)
    return output


class GenreCatalog:
    """Genre reference set, loaded once and kept for the process lifetime."""

    def __init__(self, catalog_client: CatalogClient):
        self.catalog_client = catalog_client
        self._genres: list[Genre] | None = None
        self._by_id: dict[int, Genre] = {}
        self._lock = asyncio.Lock()

    async def get_genres(self) -> list[Genre]:
        if self._genres is not None:
            return self._genres
        async with self._lock:
            if self._genres is None:
                payload = await self.catalog_client.fetch_genres()
                parsed = [parse_genre(raw) for raw in payload.get("genres") or []]
                genres = unique_genres(genre for genre in parsed if genre is not None)
                self._by_id = {genre.id: genre for genre in genres}
                self._genres = genres
                logger.info("Genre reference set loaded", extra={"count": len(genres)})
        return self._genres

    async def resolve(self, genre_ids: Iterable[int]) -> list[Genre]:
        await self.get_genres()
        return unique_genres(self._by_id[genre_id] for genre_id in genre_ids if genre_id in self._by_id)

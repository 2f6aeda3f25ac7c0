import asyncio
import logging
from typing import Any

from moviescout.core.errors import CATALOG_ERRORS, APIError, EnrichmentFailed
from moviescout.core.settings import Settings
from moviescout.models.movie import NOT_AVAILABLE, NOT_INFORMED, EnrichedMovie, Genre
from moviescout.services.catalog_client import CatalogClient
from moviescout.services.genre_catalog import GenreCatalog, parse_genre, unique_genres

logger = logging.getLogger(__name__)

CAST_LIMIT = 5
# subscription first so it wins when a provider shows up in several tiers
PROVIDER_TIERS = (
    ("flatrate", "Incluído"),
    ("rent", "Aluguel"),
    ("buy", "Compra"),
)


def _safe_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _safe_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _safe_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def _optional_path(value: Any) -> str | None:
    path = _safe_str(value)
    return path or None


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def extract_director(credits: dict[str, Any]) -> str:
    for person in _as_list(credits.get("crew")):
        if isinstance(person, dict) and person.get("job") == "Director":
            name = _safe_str(person.get("name"))
            if name:
                return name
    return NOT_INFORMED


def extract_cast(credits: dict[str, Any], limit: int = CAST_LIMIT) -> str:
    members = [person for person in _as_list(credits.get("cast")) if isinstance(person, dict)]
    # lower "order" means higher billing; entries without one go last
    members.sort(key=lambda person: _safe_int(person.get("order")) if "order" in person else 10**6)
    names = [_safe_str(person.get("name")) for person in members]
    names = [name for name in names if name][:limit]
    return ", ".join(names) if names else NOT_INFORMED


def extract_streaming(providers: dict[str, Any], region: str) -> str:
    results = providers.get("results")
    regional = results.get(region) if isinstance(results, dict) else None
    if not isinstance(regional, dict):
        return NOT_AVAILABLE

    seen: set[str] = set()
    entries: list[str] = []
    for tier, label in PROVIDER_TIERS:
        for provider in _as_list(regional.get(tier)):
            if not isinstance(provider, dict):
                continue
            name = _safe_str(provider.get("provider_name"))
            if not name or name in seen:
                continue
            seen.add(name)
            entries.append(f"{name} ({label})")
    return ", ".join(entries) if entries else NOT_AVAILABLE


def _genre_ids(raw: dict[str, Any]) -> list[int]:
    ids = [genre_id for genre_id in _as_list(raw.get("genre_ids")) if isinstance(genre_id, int)]
    if not ids:
        ids = [genre.id for genre in _embedded_genres(raw)]
    return list(dict.fromkeys(ids))


def _embedded_genres(raw: dict[str, Any]) -> list[Genre]:
    parsed = [parse_genre(item) for item in _as_list(raw.get("genres"))]
    return unique_genres(genre for genre in parsed if genre is not None)


def base_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """CatalogItem fields with explicit defaults, shared by full and best-effort records."""
    title = _safe_str(raw.get("title"))
    return {
        "id": raw["id"],
        "title": title,
        "original_title": _safe_str(raw.get("original_title")) or title,
        "overview": _safe_str(raw.get("overview")),
        "poster_path": _optional_path(raw.get("poster_path")),
        "backdrop_path": _optional_path(raw.get("backdrop_path")),
        "release_date": _safe_str(raw.get("release_date")),
        "genre_ids": _genre_ids(raw),
        "vote_average": _safe_float(raw.get("vote_average")),
        "vote_count": _safe_int(raw.get("vote_count")),
        "popularity": _safe_float(raw.get("popularity")),
        "adult": bool(raw.get("adult") or False),
        "original_language": _safe_str(raw.get("original_language")),
        "video": bool(raw.get("video") or False),
    }


class DetailEnricher:
    def __init__(self, settings: Settings, catalog_client: CatalogClient, genre_catalog: GenreCatalog):
        self.settings = settings
        self.catalog_client = catalog_client
        self.genre_catalog = genre_catalog

    async def enrich(self, item_id: int, region: str | None = None) -> EnrichedMovie:
        results = await asyncio.gather(
            self.catalog_client.fetch_movie(item_id),
            self.catalog_client.fetch_credits(item_id),
            self.catalog_client.fetch_watch_providers(item_id),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            raise EnrichmentFailed(item_id) from failures[0]

        details, credits, providers = results
        if not all(isinstance(result, dict) for result in results):
            logger.warning("Catalog returned a malformed detail body", extra={"movie_id": item_id})
            raise EnrichmentFailed(item_id)

        if not isinstance(details.get("id"), int):
            details = {**details, "id": item_id}

        fields = base_fields(details)
        return EnrichedMovie(
            **fields,
            genres=_embedded_genres(details),
            director=extract_director(credits),
            cast=extract_cast(credits),
            streaming_services=extract_streaming(providers, region or self.settings.tmdb_region),
            runtime=_safe_int(details.get("runtime")),
            budget=_safe_int(details.get("budget")),
            revenue=_safe_int(details.get("revenue")),
        )

    async def best_effort(self, raw: dict[str, Any]) -> EnrichedMovie:
        fields = base_fields(raw)
        genres = _embedded_genres(raw)
        if not genres and fields["genre_ids"]:
            try:
                genres = await self.genre_catalog.resolve(fields["genre_ids"])
            except APIError:
                logger.warning("Genre reference set unavailable", extra={"movie_id": fields["id"]})
        return EnrichedMovie(**fields, genres=genres, enriched=False)

    async def enrich_or_degrade(self, raw: dict[str, Any], region: str | None = None) -> EnrichedMovie:
        try:
            return await self.enrich(raw["id"], region)
        except CATALOG_ERRORS as exc:
            logger.warning(
                "Movie enrichment failed, using search fields",
                extra={"movie_id": raw["id"], "error_code": exc.code},
            )
            return await self.best_effort(raw)

    async def enrich_many(self, raw_items: list[dict[str, Any]], region: str | None = None) -> list[EnrichedMovie]:
        semaphore = asyncio.Semaphore(self.settings.enrich_concurrency)

        async def _enrich(raw: dict[str, Any]) -> EnrichedMovie:
            async with semaphore:
                return await self.enrich_or_degrade(raw, region)

        items = [raw for raw in raw_items if isinstance(raw, dict) and isinstance(raw.get("id"), int)]
        return list(await asyncio.gather(*[_enrich(raw) for raw in items]))

import asyncio
import logging
import time
from datetime import date
from typing import Any

from moviescout.core.errors import CATALOG_ERRORS, APIError, InvalidFilterRange
from moviescout.core.settings import Settings
from moviescout.models.movie import EnrichedMovie, Genre
from moviescout.models.search import SearchFilters, SearchResponse, SortKey
from moviescout.services.catalog_client import CatalogClient
from moviescout.services.detail_enricher import DetailEnricher
from moviescout.services.genre_catalog import GenreCatalog
from moviescout.services.name_normalizer import expand_ordered, name_matches

logger = logging.getLogger(__name__)

DIRECTING = "Directing"


def validate_filters(filters: SearchFilters) -> None:
    if filters.year_start is not None and filters.year_end is not None and filters.year_start > filters.year_end:
        raise InvalidFilterRange(
            "year_start must not be after year_end",
            details={"year_start": filters.year_start, "year_end": filters.year_end},
        )


def dedupe_movies(movies: list[EnrichedMovie]) -> list[EnrichedMovie]:
    """Keeps the first-seen record for every catalog id."""
    seen: set[int] = set()
    unique: list[EnrichedMovie] = []
    for movie in movies:
        if movie.id in seen:
            continue
        seen.add(movie.id)
        unique.append(movie)
    return unique


def apply_filters(movies: list[EnrichedMovie], filters: SearchFilters) -> list[EnrichedMovie]:
    filtered = movies
    if filters.genre_ids:
        filtered = [movie for movie in filtered if any(genre.id in filters.genre_ids for genre in movie.genres)]
    if filters.has_year_range:
        start = filters.year_start if filters.year_start is not None else date.min.year
        end = filters.year_end if filters.year_end is not None else date.max.year
        filtered = [
            movie for movie in filtered if movie.release_year is not None and start <= movie.release_year <= end
        ]
    return filtered


def _sort_value(movie: EnrichedMovie, sort_key: SortKey) -> Any:
    if sort_key.field == "release_date":
        try:
            return date.fromisoformat(movie.release_date[:10])
        except ValueError:
            return None
    return getattr(movie, sort_key.field)


def apply_sort(movies: list[EnrichedMovie], sort_key: SortKey) -> list[EnrichedMovie]:
    """Stable sort; records without a sortable value go last either way."""
    keyed = [(movie, _sort_value(movie, sort_key)) for movie in movies]
    present = [(movie, value) for movie, value in keyed if value is not None]
    missing = [movie for movie, value in keyed if value is None]
    ordered = sorted(present, key=lambda item: item[1], reverse=sort_key.descending)
    return [movie for movie, _ in ordered] + missing


def _results(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    results = payload.get("results")
    if not isinstance(results, list):
        return []
    return [item for item in results if isinstance(item, dict) and isinstance(item.get("id"), int)]


def merge_by_id(result_sets: list[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    by_id: dict[int, dict[str, Any]] = {}
    for results in result_sets:
        for item in results:
            by_id.setdefault(item["id"], item)
    return list(by_id.values())


class SearchAggregator:
    def __init__(
        self,
        settings: Settings,
        catalog_client: CatalogClient,
        genre_catalog: GenreCatalog,
        enricher: DetailEnricher,
    ):
        self.settings = settings
        self.catalog_client = catalog_client
        self.genre_catalog = genre_catalog
        self.enricher = enricher

    async def get_genres(self) -> list[Genre]:
        return await self.genre_catalog.get_genres()

    async def get_details(self, item_id: int) -> EnrichedMovie:
        return await self.enricher.enrich(item_id)

    @staticmethod
    def _settled(outcomes: list[Any], context: dict[str, Any]) -> tuple[list[Any], list[APIError]]:
        values: list[Any] = []
        errors: list[APIError] = []
        for outcome in outcomes:
            if isinstance(outcome, CATALOG_ERRORS):
                errors.append(outcome)
                logger.warning(
                    "Catalog query failed",
                    extra={**context, "error_code": outcome.code},
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                values.append(outcome)
        return values, errors

    async def _fan_out_queries(self, term: str, search) -> list[list[dict[str, Any]]]:
        variants = expand_ordered(term)
        outcomes = await asyncio.gather(*[search(variant) for variant in variants], return_exceptions=True)
        payloads, errors = self._settled(outcomes, {"term": term})
        if errors and not payloads:
            raise errors[0]
        return [_results(payload) for payload in payloads]

    async def search_movie_term(self, term: str, region: str | None = None) -> list[EnrichedMovie]:
        result_sets = await self._fan_out_queries(term, self.catalog_client.search_movies)
        merged = merge_by_id(result_sets)[: self.settings.movie_results_per_term]
        movies = await self.enricher.enrich_many(merged, region)
        logger.info(
            "Movie term searched",
            extra={"term": term, "query_variants": len(result_sets), "matched": len(merged)},
        )
        return movies

    async def _movies_for_director(
        self, person: dict[str, Any], term: str, region: str | None = None
    ) -> list[EnrichedMovie]:
        payload = await self.catalog_client.discover_movies(
            {"with_crew": person["id"], "sort_by": SortKey.POPULARITY_DESC.value}
        )
        raw_items = _results(payload)[: self.settings.director_movies_per_person]
        movies = await self.enricher.enrich_many(raw_items, region)
        # with_crew matches any crew role, so keep only movies this person directed
        verified = [movie for movie in movies if name_matches(movie.director, term)]
        logger.info(
            "Director movies verified",
            extra={
                "term": term,
                "person_id": person["id"],
                "candidates": len(movies),
                "verified": len(verified),
            },
        )
        return verified

    async def search_director_term(self, term: str, region: str | None = None) -> list[EnrichedMovie]:
        result_sets = await self._fan_out_queries(term, self.catalog_client.search_people)
        people = [
            person for person in merge_by_id(result_sets) if person.get("known_for_department") == DIRECTING
        ][: self.settings.directors_per_term]
        if not people:
            return []

        outcomes = await asyncio.gather(
            *[self._movies_for_director(person, term, region) for person in people],
            return_exceptions=True,
        )
        per_person, errors = self._settled(outcomes, {"term": term})
        if errors and not per_person:
            raise errors[0]
        return [movie for movies in per_person for movie in movies]

    async def discover(self, filters: SearchFilters) -> list[EnrichedMovie]:
        params: dict[str, Any] = {"sort_by": filters.sort_key.value}
        if filters.genre_ids:
            params["with_genres"] = ",".join(str(genre_id) for genre_id in sorted(filters.genre_ids))
        if filters.year_start is not None:
            params["primary_release_date.gte"] = f"{filters.year_start}-01-01"
        if filters.year_end is not None:
            params["primary_release_date.lte"] = f"{filters.year_end}-12-31"
        if filters.region:
            params["region"] = filters.region

        pages = range(1, self.settings.discover_fallback_pages + 1)
        outcomes = await asyncio.gather(
            *[self.catalog_client.discover_movies(params, page=page) for page in pages],
            return_exceptions=True,
        )
        payloads, errors = self._settled(outcomes, {"discover": True})
        if errors and not payloads:
            raise errors[0]
        merged = merge_by_id([_results(payload) for payload in payloads])
        return await self.enricher.enrich_many(merged[: self.settings.discover_fallback_limit], filters.region)

    async def search_by_terms(
        self,
        movie_terms: list[str],
        director_terms: list[str],
        filters: SearchFilters,
    ) -> SearchResponse:
        validate_filters(filters)
        start = time.perf_counter()
        movie_terms = list(dict.fromkeys(term.strip() for term in movie_terms if term.strip()))
        director_terms = list(dict.fromkeys(term.strip() for term in director_terms if term.strip()))

        if movie_terms or director_terms:
            tasks = [self.search_movie_term(term, filters.region) for term in movie_terms]
            tasks += [self.search_director_term(term, filters.region) for term in director_terms]
        else:
            tasks = [self.discover(filters)]

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        contributions, errors = self._settled(outcomes, {"stage": "term"})
        if errors and not contributions:
            # nothing could be produced at all, surface it as a retryable failure
            raise errors[0]

        accumulated = [movie for movies in contributions for movie in movies]
        unique = dedupe_movies(accumulated)
        filtered = apply_filters(unique, filters)
        ordered = apply_sort(filtered, filters.sort_key)
        movies = ordered[: self.settings.max_search_results]

        logger.info(
            "Search completed",
            extra={
                "movie_terms": movie_terms,
                "director_terms": director_terms,
                "accumulated": len(accumulated),
                "unique": len(unique),
                "after_filters": len(filtered),
                "returned": len(movies),
                "failed_terms": len(errors),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return SearchResponse(movies=movies, total_results=len(movies))

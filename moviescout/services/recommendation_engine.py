import asyncio
import logging
import math
from collections import Counter, OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from moviescout.core.errors import CATALOG_ERRORS
from moviescout.core.settings import Settings
from moviescout.models.movie import EnrichedMovie
from moviescout.models.recommendation import Lens, PreferenceRange, ScoredMovie, UserProfile
from moviescout.models.search import SortKey
from moviescout.services.catalog_client import CatalogClient
from moviescout.services.detail_enricher import DetailEnricher

logger = logging.getLogger(__name__)

# Action, Comedy, Drama
DEFAULT_GENRES = (28, 35, 18)
TOP_GENRES_LIMIT = 3
GUARANTEED_SLOTS = 3

GENRE_WEIGHT = 0.30
RATING_WEIGHT = 0.25
DIRECTOR_WEIGHT = 0.20
POPULARITY_WEIGHT = 0.15
RECENCY_WEIGHT = 0.10
ESTABLISHED_BONUS = 0.05
GENRE_DIVERSITY_BONUS = 0.03


@dataclass(frozen=True)
class LensStrategy:
    sort_key: SortKey
    min_votes: int
    years_back: int | None = None
    first_year: int | None = None

    def year_window(self, current_year: int) -> tuple[int, int]:
        if self.first_year is not None:
            return self.first_year, current_year
        return current_year - (self.years_back or 0), current_year


LENS_STRATEGIES: dict[Lens, LensStrategy] = {
    Lens.SMART: LensStrategy(sort_key=SortKey.VOTE_AVERAGE_DESC, min_votes=100, years_back=15),
    Lens.QUALITY: LensStrategy(sort_key=SortKey.VOTE_AVERAGE_DESC, min_votes=100, first_year=2010),
    Lens.TRENDING: LensStrategy(sort_key=SortKey.POPULARITY_DESC, min_votes=20, years_back=1),
}


def default_profile(current_year: int) -> UserProfile:
    return UserProfile(
        genre_weights=Counter({genre_id: 1.0 for genre_id in DEFAULT_GENRES}),
        decade_weights=Counter({(current_year // 10) * 10: 1.0}),
        is_default=True,
    )


def build_profile(history: list[EnrichedMovie], current_year: int) -> UserProfile:
    """Taste profile where later history entries weigh more: (index + 1) / len(history)."""
    if not history:
        return default_profile(current_year)

    genre_weights: Counter = Counter()
    director_weights: Counter = Counter()
    decade_weights: Counter = Counter()
    total = len(history)

    for index, movie in enumerate(history):
        weight = (index + 1) / total
        genre_ids = [genre.id for genre in movie.genres] or movie.genre_ids
        for genre_id in dict.fromkeys(genre_ids):
            genre_weights[genre_id] += weight
        if movie.has_director:
            director_weights[movie.director] += weight
        if movie.decade is not None:
            decade_weights[movie.decade] += weight

    if not genre_weights:
        genre_weights = Counter({genre_id: 1.0 for genre_id in DEFAULT_GENRES})

    defaults = default_profile(current_year)
    return UserProfile(
        genre_weights=genre_weights,
        director_weights=director_weights,
        decade_weights=decade_weights or defaults.decade_weights,
        rating=PreferenceRange.from_values(
            [movie.vote_average for movie in history if movie.vote_average > 0], defaults.rating.avg
        ),
        popularity=PreferenceRange.from_values(
            [movie.popularity for movie in history if movie.popularity > 0], defaults.popularity.avg
        ),
        runtime=PreferenceRange.from_values(
            [float(movie.runtime) for movie in history if movie.runtime > 0], defaults.runtime.avg
        ),
    )


def _closeness(value: float, target: float, scale: float) -> float:
    return 1.0 - min(abs(value - target) / scale, 1.0)


def _ratio(value: float, target: float) -> float:
    if value <= 0 or target <= 0:
        return 0.0
    return min(value, target) / max(value, target)


def score_movie(
    movie: EnrichedMovie,
    profile: UserProfile,
    lens: Lens,
    current_year: int,
    max_popularity: float,
) -> float:
    max_genre_weight = max(profile.genre_weights.values(), default=0.0)
    genre_score = 0.0
    if movie.genres and max_genre_weight > 0:
        genre_score = sum(profile.genre_weights.get(genre.id, 0.0) for genre in movie.genres) / (
            len(movie.genres) * max_genre_weight
        )

    max_director_weight = max(profile.director_weights.values(), default=0.0)
    director_score = 0.0
    if movie.has_director and max_director_weight > 0:
        director_score = profile.director_weights.get(movie.director, 0.0) / max_director_weight

    if lens is Lens.QUALITY:
        rating_score = movie.vote_average / 10.0
    else:
        rating_score = _closeness(movie.vote_average, profile.rating.avg, 5.0)

    recency_score = 0.0
    year = movie.release_year
    if year is not None:
        if lens is Lens.TRENDING:
            recency_score = _closeness(year, current_year, 5.0)
        elif profile.preferred_decade is not None:
            recency_score = _closeness(movie.decade, profile.preferred_decade, 50.0)

    if lens is Lens.TRENDING:
        popularity_score = 0.0
        if max_popularity > 0 and movie.popularity > 0:
            popularity_score = math.log1p(movie.popularity) / math.log1p(max_popularity)
    else:
        popularity_score = _ratio(movie.popularity, profile.popularity.avg)

    score = (
        GENRE_WEIGHT * genre_score
        + DIRECTOR_WEIGHT * director_score
        + RATING_WEIGHT * rating_score
        + RECENCY_WEIGHT * recency_score
        + POPULARITY_WEIGHT * popularity_score
    )
    if movie.vote_average >= 7.0 and movie.vote_count >= 100:
        score += ESTABLISHED_BONUS
    if len(movie.genres) > 2:
        score += GENRE_DIVERSITY_BONUS
    return score


def diversify(scored: list[ScoredMovie], limit: int, guaranteed: int = GUARANTEED_SLOTS) -> list[EnrichedMovie]:
    """Top ``guaranteed`` by score, then prefer a new primary genre, director or decade, then backfill."""
    ranked = sorted(scored, key=lambda item: item.score, reverse=True)
    selected = [item.movie for item in ranked[: min(guaranteed, limit)]]
    seen_genres = {movie.primary_genre_id for movie in selected}
    seen_directors = {movie.director for movie in selected if movie.has_director}
    seen_decades = {movie.decade for movie in selected}

    deferred: list[EnrichedMovie] = []
    for item in ranked[len(selected) :]:
        if len(selected) >= limit:
            break
        movie = item.movie
        new_genre = movie.primary_genre_id is not None and movie.primary_genre_id not in seen_genres
        new_director = movie.has_director and movie.director not in seen_directors
        new_decade = movie.decade is not None and movie.decade not in seen_decades
        if new_genre or new_director or new_decade:
            selected.append(movie)
            seen_genres.add(movie.primary_genre_id)
            if movie.has_director:
                seen_directors.add(movie.director)
            seen_decades.add(movie.decade)
        else:
            deferred.append(movie)

    for movie in deferred:
        if len(selected) >= limit:
            break
        selected.append(movie)
    return selected


class RecommendationEngine:
    def __init__(
        self,
        settings: Settings,
        catalog_client: CatalogClient,
        enricher: DetailEnricher,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings
        self.catalog_client = catalog_client
        self.enricher = enricher
        self._today = today

    def discovery_params(self, profile: UserProfile, lens: Lens, current_year: int) -> dict[str, Any]:
        strategy = LENS_STRATEGIES[lens]
        first_year, last_year = strategy.year_window(current_year)
        params: dict[str, Any] = {
            "sort_by": strategy.sort_key.value,
            "primary_release_date.gte": f"{first_year}-01-01",
            "primary_release_date.lte": f"{last_year}-12-31",
            "vote_count.gte": strategy.min_votes,
        }
        genres = profile.top_genres(TOP_GENRES_LIMIT)
        if genres:
            # pipe means "any of" for the discover endpoint
            params["with_genres"] = "|".join(str(genre_id) for genre_id in genres)
        return params

    async def _candidate_pool(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        pages = range(1, self.settings.recommendation_pages + 1)
        outcomes = await asyncio.gather(
            *[self.catalog_client.discover_movies(params, page=page) for page in pages],
            return_exceptions=True,
        )
        payloads = []
        errors = []
        for page, outcome in zip(pages, outcomes):
            if isinstance(outcome, CATALOG_ERRORS):
                logger.warning("Discovery page failed", extra={"page": page, "error_code": outcome.code})
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                payloads.append(outcome)
        if errors and not payloads:
            raise errors[0]

        by_id: dict[int, dict[str, Any]] = {}
        for payload in payloads:
            results = payload.get("results") if isinstance(payload, dict) else None
            for item in results if isinstance(results, list) else []:
                if isinstance(item, dict) and isinstance(item.get("id"), int):
                    by_id.setdefault(item["id"], item)
        return list(by_id.values())

    async def recommend(
        self,
        history: list[EnrichedMovie],
        lens: Lens,
        excluded_from_other_lenses: set[int] | None = None,
    ) -> list[EnrichedMovie]:
        current_year = self._today().year
        profile = build_profile(history, current_year)
        params = self.discovery_params(profile, lens, current_year)
        pool = await self._candidate_pool(params)

        blocked = {movie.id for movie in history} | set(excluded_from_other_lenses or ())
        candidates = [
            item
            for item in pool
            if item["id"] not in blocked and not item.get("adult") and (item.get("genre_ids") or item.get("genres"))
        ][: self.settings.recommendation_candidate_pool]
        movies = await self.enricher.enrich_many(candidates)

        max_popularity = max((movie.popularity for movie in movies), default=0.0)
        scored = [
            ScoredMovie(movie=movie, score=score_movie(movie, profile, lens, current_year, max_popularity))
            for movie in movies
        ]
        kept = [item for item in scored if item.score >= self.settings.recommendation_min_score]
        selected = diversify(kept, self.settings.recommendation_size)

        logger.info(
            "Recommendations generated",
            extra={
                "lens": lens.value,
                "history_size": len(history),
                "default_profile": profile.is_default,
                "pool": len(pool),
                "candidates": len(candidates),
                "above_threshold": len(kept),
                "returned": len(selected),
            },
        )
        return selected


class RecommendationSession:
    """Per-user session state: what each lens last showed, so lenses don't repeat each other."""

    def __init__(self, engine: RecommendationEngine):
        self.engine = engine
        self._shown: dict[Lens, set[int]] = {}
        self._lock = asyncio.Lock()

    def exclusions_for(self, lens: Lens) -> set[int]:
        excluded: set[int] = set()
        for other, ids in self._shown.items():
            if other is not lens:
                excluded |= ids
        return excluded

    async def recommend(self, history: list[EnrichedMovie], lens: Lens) -> list[EnrichedMovie]:
        async with self._lock:
            movies = await self.engine.recommend(history, lens, self.exclusions_for(lens))
            self._shown[lens] = {movie.id for movie in movies}
            return movies

    async def smart(self, history: list[EnrichedMovie]) -> list[EnrichedMovie]:
        return await self.recommend(history, Lens.SMART)

    async def quality(self, history: list[EnrichedMovie]) -> list[EnrichedMovie]:
        return await self.recommend(history, Lens.QUALITY)

    async def trending(self, history: list[EnrichedMovie]) -> list[EnrichedMovie]:
        return await self.recommend(history, Lens.TRENDING)

    def reset(self) -> None:
        self._shown.clear()


class RecommendationSessions:
    def __init__(self, engine: RecommendationEngine, max_sessions: int = 1000):
        self.engine = engine
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, RecommendationSession] = OrderedDict()

    def get(self, session_id: str) -> RecommendationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = RecommendationSession(self.engine)
            self._sessions[session_id] = session
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def drop(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

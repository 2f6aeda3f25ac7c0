import httpx
import pytest

from moviescout.core.errors import CatalogUnavailable, CatalogUnreachable, InvalidFilterRange
from moviescout.core.settings import Settings
from moviescout.models.movie import NOT_INFORMED, EnrichedMovie, Genre
from moviescout.models.search import SearchFilters, SortKey
from moviescout.services.catalog_client import CatalogClient
from moviescout.services.detail_enricher import DetailEnricher
from moviescout.services.genre_catalog import GenreCatalog
from moviescout.services.name_normalizer import name_matches
from moviescout.services.search_aggregator import SearchAggregator, apply_sort

GENRE_NAMES = {18: "Drama", 28: "Ação", 53: "Thriller", 80: "Crime", 878: "Ficção científica", 9648: "Mistério"}

# id -> (title, release_date, genre ids, popularity, vote average, director)
MOVIES = {
    603: ("Matrix", "1999-03-31", [28, 878], 80.0, 8.2, "Lana Wachowski"),
    604: ("Matrix Reloaded", "2003-05-15", [28, 878], 50.0, 7.0, "Lana Wachowski"),
    605: ("Matrix Revolutions", "2003-11-05", [28, 878], 45.0, 6.7, "Lana Wachowski"),
    606: ("Matrix Resurrections", "", [28, 878], 60.0, 6.4, "Lana Wachowski"),
    598: ("Cidade de Deus", "2002-08-30", [18, 80], 30.0, 8.4, "Fernando Meirelles"),
    1000: ("O Jardineiro Fiel", "2005-08-31", [18, 53], 15.0, 7.2, "Fernando Meirelles"),
    1001: ("Ensaio sobre a Cegueira", "2008-09-12", [18, 9648], 12.0, 6.6, "Fernando Meirelles"),
    2000: ("Central do Brasil", "1998-04-03", [18], 14.0, 8.0, "Walter Salles"),
}

MOVIE_SEARCHES = {
    "Matrix": [603, 604, 605, 606],
    "Matrix Reloaded": [604, 603],
    "Cidade de Deus": [598],
}

PEOPLE = {
    "Fernando Meirelles": [
        {"id": 1, "name": "Fernando Meirelles", "known_for_department": "Directing"},
        {"id": 2, "name": "Fernando Meirelles", "known_for_department": "Acting"},
    ],
}

# with_crew matches every crew role: Meirelles produced Central do Brasil in this catalog
CREW_CREDITS = {1: [598, 1000, 1001, 2000]}


def _raw(movie_id: int) -> dict:
    title, release_date, genre_ids, popularity, vote_average, _ = MOVIES[movie_id]
    return {
        "id": movie_id,
        "title": title,
        "release_date": release_date,
        "genre_ids": genre_ids,
        "popularity": popularity,
        "vote_average": vote_average,
        "vote_count": 500,
    }


class _CatalogStub:
    def __init__(self, failing_details: set[int] | None = None, unreachable: bool = False):
        self.failing_details = failing_details or set()
        self.unreachable = unreachable
        self.movie_queries: list[str] = []
        self.people_queries: list[str] = []
        self.discover_calls: list[tuple[dict, int]] = []

    def _check(self) -> None:
        if self.unreachable:
            raise CatalogUnreachable(path="/search")

    async def search_movies(self, query: str, page: int = 1) -> dict:
        self._check()
        self.movie_queries.append(query)
        return {"page": page, "total_pages": 1, "results": [_raw(movie_id) for movie_id in MOVIE_SEARCHES.get(query, [])]}

    async def search_people(self, query: str) -> dict:
        self._check()
        self.people_queries.append(query)
        return {"results": PEOPLE.get(query, [])}

    async def discover_movies(self, params: dict, page: int = 1) -> dict:
        self._check()
        self.discover_calls.append((params, page))
        if "with_crew" in params:
            ids = CREW_CREDITS.get(params["with_crew"], [])
        else:
            ids = [2000, 598, 603] if page == 1 else [603, 1000]
        return {"page": page, "total_pages": 2, "results": [_raw(movie_id) for movie_id in ids]}

    async def fetch_movie(self, movie_id: int) -> dict:
        if movie_id in self.failing_details:
            raise CatalogUnavailable(500, path=f"/movie/{movie_id}")
        raw = _raw(movie_id)
        raw["genres"] = [{"id": genre_id, "name": GENRE_NAMES[genre_id]} for genre_id in raw.pop("genre_ids")]
        raw["runtime"] = 120
        return raw

    async def fetch_credits(self, movie_id: int) -> dict:
        director = MOVIES[movie_id][5]
        return {
            "cast": [{"name": "Actor One", "order": 0}],
            "crew": [{"name": "Somebody Else", "job": "Producer"}, {"name": director, "job": "Director"}],
        }

    async def fetch_watch_providers(self, movie_id: int) -> dict:
        return {"results": {}}

    async def fetch_genres(self) -> dict:
        return {"genres": [{"id": genre_id, "name": name} for genre_id, name in GENRE_NAMES.items()]}


def _aggregator(catalog: _CatalogStub, **overrides) -> SearchAggregator:
    settings = Settings(environment="test", **overrides)
    genre_catalog = GenreCatalog(catalog)
    enricher = DetailEnricher(settings, catalog, genre_catalog)
    return SearchAggregator(settings=settings, catalog_client=catalog, genre_catalog=genre_catalog, enricher=enricher)


@pytest.mark.asyncio
async def test_movie_term_returns_sorted_enriched_unique_movies() -> None:
    response = await _aggregator(_CatalogStub()).search_by_terms(["Matrix"], [], SearchFilters())

    ids = [movie.id for movie in response.movies]
    assert ids == [603, 606, 604, 605]
    assert len(ids) == len(set(ids))
    assert response.total_results == 4
    assert response.page == 1 and response.total_pages == 1
    for movie in response.movies:
        assert movie.director
        assert movie.cast
        assert movie.streaming_services == "Não disponível"


@pytest.mark.asyncio
async def test_overlapping_terms_are_deduplicated() -> None:
    catalog = _CatalogStub()
    response = await _aggregator(catalog).search_by_terms(["Matrix", "Matrix Reloaded", "Matrix"], [], SearchFilters())

    ids = [movie.id for movie in response.movies]
    assert len(ids) == len(set(ids))
    assert set(ids) == {603, 604, 605, 606}
    assert catalog.movie_queries.count("Matrix") == 1


@pytest.mark.asyncio
async def test_director_term_keeps_only_verified_director_movies() -> None:
    catalog = _CatalogStub()
    response = await _aggregator(catalog).search_by_terms([], ["Fernando Meirelles"], SearchFilters())

    ids = {movie.id for movie in response.movies}
    assert ids == {598, 1000, 1001}
    assert 2000 not in ids
    assert all(name_matches(movie.director, "Fernando Meirelles") for movie in response.movies)
    # only the person known for directing is expanded into a crew discovery
    assert [params["with_crew"] for params, _ in catalog.discover_calls] == [1]


@pytest.mark.asyncio
async def test_director_search_rejects_unverifiable_degraded_records() -> None:
    catalog = _CatalogStub(failing_details={1000})
    response = await _aggregator(catalog).search_by_terms([], ["Fernando Meirelles"], SearchFilters())

    assert {movie.id for movie in response.movies} == {598, 1001}


@pytest.mark.asyncio
async def test_failed_enrichment_still_returns_best_effort_record() -> None:
    catalog = _CatalogStub(failing_details={604})
    response = await _aggregator(catalog).search_by_terms(["Matrix"], [], SearchFilters())

    degraded = next(movie for movie in response.movies if movie.id == 604)
    assert degraded.enriched is False
    assert degraded.director == NOT_INFORMED
    assert degraded.cast == NOT_INFORMED
    assert [genre.id for genre in degraded.genres] == [28, 878]


@pytest.mark.asyncio
async def test_genre_filter_keeps_movies_with_matching_genre() -> None:
    filters = SearchFilters(genre_ids={80, 53})
    response = await _aggregator(_CatalogStub()).search_by_terms(["Matrix"], ["Fernando Meirelles"], filters)

    assert {movie.id for movie in response.movies} == {598, 1000}
    for movie in response.movies:
        assert {genre.id for genre in movie.genres} & filters.genre_ids


@pytest.mark.asyncio
async def test_year_filter_is_inclusive_and_drops_unparseable_dates() -> None:
    filters = SearchFilters(year_start=1999, year_end=2003)
    response = await _aggregator(_CatalogStub()).search_by_terms(["Matrix"], [], filters)

    assert {movie.id for movie in response.movies} == {603, 604, 605}
    assert all(1999 <= movie.release_year <= 2003 for movie in response.movies)


@pytest.mark.asyncio
async def test_inverted_year_range_is_rejected() -> None:
    with pytest.raises(InvalidFilterRange):
        await _aggregator(_CatalogStub()).search_by_terms(["Matrix"], [], SearchFilters(year_start=2010, year_end=2000))


@pytest.mark.asyncio
async def test_no_terms_falls_back_to_discovery_with_filters() -> None:
    catalog = _CatalogStub()
    filters = SearchFilters(genre_ids={18}, year_start=1990, year_end=2010, sort_key=SortKey.VOTE_AVERAGE_DESC)

    response = await _aggregator(catalog).search_by_terms(["   "], [], filters)

    assert [movie.id for movie in response.movies] == [598, 2000, 1000]
    params, _ = catalog.discover_calls[0]
    assert params["with_genres"] == "18"
    assert params["primary_release_date.gte"] == "1990-01-01"
    assert params["sort_by"] == "vote_average.desc"
    assert sorted(page for _, page in catalog.discover_calls) == [1, 2]


@pytest.mark.asyncio
async def test_output_is_bounded() -> None:
    response = await _aggregator(_CatalogStub(), max_search_results=3).search_by_terms(
        ["Matrix", "Cidade de Deus"], ["Fernando Meirelles"], SearchFilters()
    )

    assert len(response.movies) == 3


@pytest.mark.asyncio
async def test_term_without_matches_contributes_nothing() -> None:
    response = await _aggregator(_CatalogStub()).search_by_terms(["Filme Inexistente"], ["Ninguém"], SearchFilters())

    assert response.movies == []
    assert response.total_results == 0


@pytest.mark.asyncio
async def test_catalog_unreachable_for_every_term_propagates() -> None:
    with pytest.raises(CatalogUnreachable):
        await _aggregator(_CatalogStub(unreachable=True)).search_by_terms(["Matrix"], [], SearchFilters())


@pytest.mark.asyncio
async def test_one_failing_term_does_not_discard_the_others() -> None:
    class _FlakyCatalog(_CatalogStub):
        async def search_people(self, query: str) -> dict:
            raise CatalogUnavailable(429, path="/search/person")

    response = await _aggregator(_FlakyCatalog()).search_by_terms(["Cidade de Deus"], ["Fernando Meirelles"], SearchFilters())

    assert [movie.id for movie in response.movies] == [598]


def _movie(movie_id: int, release_date: str, revenue: int = 0) -> EnrichedMovie:
    return EnrichedMovie(id=movie_id, title=str(movie_id), release_date=release_date, revenue=revenue, genres=[Genre(id=18, name="Drama")])


def test_sort_puts_missing_dates_last_in_both_directions() -> None:
    movies = [_movie(1, ""), _movie(2, "2001-01-01"), _movie(3, "1999-01-01"), _movie(4, "not-a-date")]

    assert [movie.id for movie in apply_sort(movies, SortKey.RELEASE_DATE_ASC)] == [3, 2, 1, 4]
    assert [movie.id for movie in apply_sort(movies, SortKey.RELEASE_DATE_DESC)] == [2, 3, 1, 4]


def test_sort_is_stable_for_ties() -> None:
    movies = [_movie(1, "2000-01-01", revenue=10), _movie(2, "2000-01-01", revenue=10), _movie(3, "2000-01-01", revenue=20)]

    assert [movie.id for movie in apply_sort(movies, SortKey.REVENUE_DESC)] == [3, 1, 2]


def _catalog_routes(request: httpx.Request) -> httpx.Response:
    path = request.url.path.removeprefix("/3")
    if path == "/search/movie":
        return httpx.Response(200, json={"results": [_raw(603), _raw(598)]})
    if path == "/movie/598":
        return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})
    if path.startswith("/movie/") and path.endswith("/credits"):
        return httpx.Response(200, json={"cast": [], "crew": [{"name": "Lana Wachowski", "job": "Director"}]})
    if path.endswith("/watch/providers"):
        return httpx.Response(200, json={"results": {}})
    if path.startswith("/movie/"):
        raw = _raw(int(path.rsplit("/", 1)[1]))
        raw["genres"] = [{"id": genre_id, "name": GENRE_NAMES[genre_id]} for genre_id in raw.pop("genre_ids")]
        return httpx.Response(200, json=raw)
    if path == "/genre/movie/list":
        return httpx.Response(200, json={"genres": [{"id": genre_id, "name": name} for genre_id, name in GENRE_NAMES.items()]})
    return httpx.Response(404, json={})


@pytest.mark.asyncio
async def test_malformed_detail_body_degrades_only_that_movie() -> None:
    settings = Settings(environment="test", tmdb_api_key="test-key", tmdb_requests_per_second=1000.0)
    catalog = CatalogClient(settings, transport=httpx.MockTransport(_catalog_routes))
    genre_catalog = GenreCatalog(catalog)
    aggregator = SearchAggregator(
        settings=settings,
        catalog_client=catalog,
        genre_catalog=genre_catalog,
        enricher=DetailEnricher(settings, catalog, genre_catalog),
    )

    response = await aggregator.search_by_terms(["Matrix"], [], SearchFilters())
    await catalog.close()

    by_id = {movie.id: movie for movie in response.movies}
    assert set(by_id) == {603, 598}
    assert by_id[603].enriched is True
    assert by_id[603].director == "Lana Wachowski"
    assert by_id[598].enriched is False
    assert [genre.name for genre in by_id[598].genres] == ["Drama", "Crime"]


@pytest.mark.asyncio
async def test_search_region_selects_streaming_providers() -> None:
    class _RegionalCatalog(_CatalogStub):
        async def fetch_watch_providers(self, movie_id: int) -> dict:
            return {
                "results": {
                    "BR": {"flatrate": [{"provider_name": "Globoplay"}]},
                    "US": {"rent": [{"provider_name": "Apple TV"}]},
                }
            }

    response = await _aggregator(_RegionalCatalog()).search_by_terms(["Cidade de Deus"], [], SearchFilters(region="US"))

    assert [movie.streaming_services for movie in response.movies] == ["Apple TV (Aluguel)"]

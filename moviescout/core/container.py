import logging

from moviescout.core.settings import Settings
from moviescout.services.catalog_client import CatalogClient
from moviescout.services.detail_enricher import DetailEnricher
from moviescout.services.genre_catalog import GenreCatalog
from moviescout.services.recommendation_engine import RecommendationEngine, RecommendationSessions
from moviescout.services.saved_list import SavedListStore
from moviescout.services.search_aggregator import SearchAggregator

logger = logging.getLogger(__name__)


class AppContainer:
    def __init__(self, settings: Settings):
        self.settings = settings

        # one client and one genre set per process, shared by every service
        self.catalog_client = CatalogClient(settings)
        self.genre_catalog = GenreCatalog(self.catalog_client)
        self.enricher = DetailEnricher(settings, self.catalog_client, self.genre_catalog)
        self.search_aggregator = SearchAggregator(
            settings=settings,
            catalog_client=self.catalog_client,
            genre_catalog=self.genre_catalog,
            enricher=self.enricher,
        )
        self.recommendation_engine = RecommendationEngine(settings, self.catalog_client, self.enricher)
        self.recommendation_sessions = RecommendationSessions(self.recommendation_engine)
        self.saved_list = SavedListStore(settings.saved_list_path)

        logger.info(
            "App container initialized",
            extra={
                "tmdb_base_url": settings.tmdb_base_url,
                "tmdb_language": settings.tmdb_language,
                "tmdb_region": settings.tmdb_region,
                "tmdb_api_key_set": bool(settings.tmdb_api_key),
                "movie_results_per_term": settings.movie_results_per_term,
                "directors_per_term": settings.directors_per_term,
                "director_movies_per_person": settings.director_movies_per_person,
                "max_search_results": settings.max_search_results,
                "recommendation_size": settings.recommendation_size,
                "recommendation_pages": settings.recommendation_pages,
                "recommendation_min_score": settings.recommendation_min_score,
                "saved_list_path": settings.saved_list_path,
            },
        )

    async def close(self) -> None:
        await self.catalog_client.close()

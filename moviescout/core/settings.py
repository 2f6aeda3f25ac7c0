from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "MovieScout API"
    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    tmdb_api_key: str | None = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_timeout_seconds: float = 20.0
    tmdb_requests_per_second: float = 20.0
    tmdb_language: str = "pt-BR"
    tmdb_region: str = "BR"

    # search fan-out bounds
    movie_results_per_term: int = Field(default=8, ge=1, le=20)
    directors_per_term: int = Field(default=2, ge=1, le=5)
    director_movies_per_person: int = Field(default=15, ge=1, le=20)
    max_search_results: int = Field(default=50, ge=1, le=200)
    discover_fallback_pages: int = Field(default=2, ge=1, le=5)
    discover_fallback_limit: int = Field(default=20, ge=1, le=100)
    enrich_concurrency: int = Field(default=8, ge=1, le=32)

    recommendation_size: int = Field(default=8, ge=1, le=20)
    recommendation_pages: int = Field(default=3, ge=1, le=5)
    recommendation_candidate_pool: int = Field(default=30, ge=1, le=100)
    recommendation_min_score: float = Field(default=0.25, ge=0.0, le=1.0)

    saved_list_path: str = "./data/saved_movies.json"

    rate_limit_per_minute: int = 60
    # search and recommendations fan out to many catalog calls each
    search_rate_limit_per_minute: int = 20


@lru_cache
def get_settings() -> Settings:
    return Settings()

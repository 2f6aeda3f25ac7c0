from datetime import date

from pydantic import BaseModel, Field

NOT_INFORMED = "Não informado"
NOT_AVAILABLE = "Não disponível"


class Genre(BaseModel):
    id: int
    name: str


def parse_release_year(release_date: str) -> int | None:
    try:
        return date.fromisoformat(release_date[:10]).year
    except (TypeError, ValueError):
        return None


class EnrichedMovie(BaseModel):
    id: int
    title: str = ""
    original_title: str = ""
    overview: str = ""
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str = ""
    genre_ids: list[int] = Field(default_factory=list)
    genres: list[Genre] = Field(default_factory=list)
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    adult: bool = False
    original_language: str = ""
    video: bool = False

    director: str = NOT_INFORMED
    cast: str = NOT_INFORMED
    streaming_services: str = NOT_AVAILABLE
    runtime: int = 0
    budget: int = 0
    revenue: int = 0
    # False for best-effort records built from a raw search hit
    enriched: bool = True

    @property
    def release_year(self) -> int | None:
        return parse_release_year(self.release_date)

    @property
    def decade(self) -> int | None:
        year = self.release_year
        return (year // 10) * 10 if year is not None else None

    @property
    def primary_genre_id(self) -> int | None:
        return self.genres[0].id if self.genres else None

    @property
    def has_director(self) -> bool:
        return bool(self.director) and self.director != NOT_INFORMED

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from moviescout.models.movie import EnrichedMovie


class SortKey(str, Enum):
    POPULARITY_DESC = "popularity.desc"
    POPULARITY_ASC = "popularity.asc"
    RELEASE_DATE_DESC = "release_date.desc"
    RELEASE_DATE_ASC = "release_date.asc"
    VOTE_AVERAGE_DESC = "vote_average.desc"
    VOTE_AVERAGE_ASC = "vote_average.asc"
    REVENUE_DESC = "revenue.desc"

    @property
    def field(self) -> str:
        return self.value.rsplit(".", 1)[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith(".desc")


class SearchFilters(BaseModel):
    genre_ids: set[int] = Field(default_factory=set)
    year_start: int | None = Field(default=None, ge=1874, le=2100)
    year_end: int | None = Field(default=None, ge=1874, le=2100)
    sort_key: SortKey = SortKey.POPULARITY_DESC
    region: str = "BR"

    @property
    def has_year_range(self) -> bool:
        return self.year_start is not None or self.year_end is not None


class SearchRequest(BaseModel):
    movie_terms: list[str] = Field(default_factory=list, max_length=10)
    director_terms: list[str] = Field(default_factory=list, max_length=10)
    filters: SearchFilters = Field(default_factory=SearchFilters)

    @field_validator("movie_terms", "director_terms")
    @classmethod
    def clean_terms(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for term in value:
            term = term.strip()
            if term and term not in cleaned:
                cleaned.append(term)
        return cleaned


class SearchResponse(BaseModel):
    movies: list[EnrichedMovie]
    total_results: int
    # results are pre-truncated, so there is only ever one page
    page: int = 1
    total_pages: int = 1

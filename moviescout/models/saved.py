from datetime import datetime, timezone

from pydantic import BaseModel, Field

from moviescout.models.movie import NOT_INFORMED, EnrichedMovie


class SavedListEntry(BaseModel):
    id: int
    title: str
    poster_path: str | None = None
    vote_average: float = 0.0
    release_date: str = ""
    genre_ids: list[int] = Field(default_factory=list)
    director: str = NOT_INFORMED
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    position: int | None = None

    @classmethod
    def from_movie(cls, movie: EnrichedMovie) -> "SavedListEntry":
        return cls(
            id=movie.id,
            title=movie.title,
            poster_path=movie.poster_path,
            vote_average=movie.vote_average,
            release_date=movie.release_date,
            genre_ids=[genre.id for genre in movie.genres] or movie.genre_ids,
            director=movie.director,
        )


class ReorderRequest(BaseModel):
    movie_ids: list[int] = Field(min_length=1)

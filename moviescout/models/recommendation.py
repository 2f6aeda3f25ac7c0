from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

from moviescout.models.movie import EnrichedMovie


class Lens(str, Enum):
    SMART = "smart"
    QUALITY = "quality"
    TRENDING = "trending"


@dataclass(frozen=True)
class PreferenceRange:
    min: float
    max: float
    avg: float

    @classmethod
    def from_values(cls, values: list[float], default: float) -> "PreferenceRange":
        if not values:
            return cls(min=default, max=default, avg=default)
        return cls(min=min(values), max=max(values), avg=sum(values) / len(values))


@dataclass
class UserProfile:
    genre_weights: Counter = field(default_factory=Counter)
    director_weights: Counter = field(default_factory=Counter)
    decade_weights: Counter = field(default_factory=Counter)
    rating: PreferenceRange = PreferenceRange(7.0, 7.0, 7.0)
    popularity: PreferenceRange = PreferenceRange(50.0, 50.0, 50.0)
    runtime: PreferenceRange = PreferenceRange(110.0, 110.0, 110.0)
    is_default: bool = False

    def top_genres(self, limit: int = 3) -> list[int]:
        ranked = sorted(self.genre_weights.items(), key=lambda item: (-item[1], item[0]))
        return [genre_id for genre_id, _ in ranked[:limit]]

    @property
    def preferred_decade(self) -> int | None:
        if not self.decade_weights:
            return None
        return sorted(self.decade_weights.items(), key=lambda item: (-item[1], -item[0]))[0][0]


@dataclass
class ScoredMovie:
    movie: EnrichedMovie
    score: float


class RecommendationRequest(BaseModel):
    session_id: str = Field(default="default", min_length=1, max_length=64)
    lens: Lens = Lens.SMART
    history: list[EnrichedMovie] = Field(default_factory=list, max_length=100)
    use_saved: bool = Field(default=False, description="use the saved list as history")


class RecommendationResponse(BaseModel):
    lens: Lens
    movies: list[EnrichedMovie]
    profile_source: str

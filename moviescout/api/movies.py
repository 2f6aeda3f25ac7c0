from fastapi import APIRouter, Depends

from moviescout.api.deps import get_container
from moviescout.core.container import AppContainer
from moviescout.models.movie import EnrichedMovie, Genre
from moviescout.models.search import SearchRequest, SearchResponse

router = APIRouter(prefix="/v1", tags=["movies"])


@router.get("/genres", response_model=list[Genre])
async def list_genres(container: AppContainer = Depends(get_container)) -> list[Genre]:
    return await container.search_aggregator.get_genres()


@router.post("/search", response_model=SearchResponse)
async def search_movies(payload: SearchRequest, container: AppContainer = Depends(get_container)) -> SearchResponse:
    return await container.search_aggregator.search_by_terms(
        payload.movie_terms,
        payload.director_terms,
        payload.filters,
    )


@router.get("/movies/{movie_id}", response_model=EnrichedMovie)
async def get_movie(movie_id: int, container: AppContainer = Depends(get_container)) -> EnrichedMovie:
    return await container.search_aggregator.get_details(movie_id)

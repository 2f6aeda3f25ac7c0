from fastapi import APIRouter, Depends

from moviescout.api.deps import get_container
from moviescout.core.container import AppContainer
from moviescout.models.recommendation import RecommendationRequest, RecommendationResponse
from moviescout.services.saved_list import hydrate_entries

router = APIRouter(prefix="/v1", tags=["recommendations"])


@router.post("/recommendations", response_model=RecommendationResponse)
async def recommend_movies(
    payload: RecommendationRequest,
    container: AppContainer = Depends(get_container),
) -> RecommendationResponse:
    history = payload.history
    profile_source = "history" if history else "default"
    if payload.use_saved:
        history = await hydrate_entries(container.saved_list.entries(), container.enricher)
        profile_source = "saved" if history else "default"

    session = container.recommendation_sessions.get(payload.session_id)
    movies = await session.recommend(history, payload.lens)
    return RecommendationResponse(lens=payload.lens, movies=movies, profile_source=profile_source)


@router.delete("/recommendations/{session_id}", status_code=204)
async def reset_session(session_id: str, container: AppContainer = Depends(get_container)) -> None:
    container.recommendation_sessions.drop(session_id)

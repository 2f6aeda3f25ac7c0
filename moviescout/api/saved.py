from fastapi import APIRouter, Depends

from moviescout.api.deps import get_container
from moviescout.core.container import AppContainer
from moviescout.models.saved import ReorderRequest, SavedListEntry

router = APIRouter(prefix="/v1/saved", tags=["saved"])


@router.get("", response_model=list[SavedListEntry])
async def list_saved(container: AppContainer = Depends(get_container)) -> list[SavedListEntry]:
    return container.saved_list.entries()


@router.post("/{movie_id}", response_model=SavedListEntry, status_code=201)
async def save_movie(movie_id: int, container: AppContainer = Depends(get_container)) -> SavedListEntry:
    movie = await container.search_aggregator.get_details(movie_id)
    return container.saved_list.add(movie)


@router.delete("/{movie_id}", status_code=204)
async def remove_saved(movie_id: int, container: AppContainer = Depends(get_container)) -> None:
    container.saved_list.remove(movie_id)


@router.put("/order", response_model=list[SavedListEntry])
async def reorder_saved(payload: ReorderRequest, container: AppContainer = Depends(get_container)) -> list[SavedListEntry]:
    return container.saved_list.reorder(payload.movie_ids)

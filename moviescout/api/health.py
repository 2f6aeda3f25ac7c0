from fastapi import APIRouter, Depends

from moviescout.api.deps import get_container
from moviescout.core.container import AppContainer

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
async def readiness(container: AppContainer = Depends(get_container)) -> dict[str, str | int | bool]:
    return {
        "status": "ok" if container.settings.tmdb_api_key else "degraded",
        "catalog_configured": bool(container.settings.tmdb_api_key),
        "cached_responses": container.catalog_client.cache_size,
    }

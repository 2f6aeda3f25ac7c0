from contextlib import asynccontextmanager

from fastapi import FastAPI

from moviescout.api.health import router as health_router
from moviescout.api.movies import router as movies_router
from moviescout.api.recommendations import router as recommendations_router
from moviescout.api.saved import router as saved_router
from moviescout.core.container import AppContainer
from moviescout.core.errors import register_error_handlers
from moviescout.core.logging import configure_logging
from moviescout.core.rate_limit import RateLimitMiddleware
from moviescout.core.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, service=settings.app_name)
    app.state.settings = settings
    app.state.container = AppContainer(settings)
    yield
    await app.state.container.close()


settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(RateLimitMiddleware, settings=settings)
register_error_handlers(app)

app.include_router(health_router)
app.include_router(movies_router)
app.include_router(recommendations_router)
app.include_router(saved_router)

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class APIError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class CatalogUnavailable(APIError):
    """The catalog answered with a non-2xx status."""

    def __init__(self, status: int, path: str = "", body: str = ""):
        super().__init__(
            "catalog_unavailable",
            "Movie catalog returned an error",
            status_code=502,
            details={"status": status, "path": path, "response": body[:200], "retryable": True},
        )
        self.status = status


class CatalogUnreachable(APIError):
    """The catalog could not be reached at all."""

    def __init__(self, path: str = "", error_type: str = ""):
        super().__init__(
            "catalog_unreachable",
            "Movie catalog is temporarily unreachable",
            status_code=503,
            details={"path": path, "error_type": error_type, "retryable": True},
        )


class EnrichmentFailed(APIError):
    def __init__(self, item_id: int):
        super().__init__(
            "enrichment_failed",
            "Could not load movie details",
            status_code=502,
            details={"movie_id": item_id, "retryable": True},
        )
        self.item_id = item_id


class InvalidFilterRange(APIError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("invalid_filter_range", message, status_code=422, details=details)


class SavedMovieNotFound(APIError):
    def __init__(self, movie_id: int):
        super().__init__(
            "saved_movie_not_found",
            "Movie is not in the saved list",
            status_code=404,
            details={"movie_id": movie_id},
        )


CATALOG_ERRORS = (CatalogUnavailable, CatalogUnreachable, EnrichmentFailed)


def _error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details or {}}}


async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.code, exc.message, exc.details))


async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=_error_payload("internal_error", "Unexpected server error", {"type": exc.__class__.__name__}),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cosmic_wallpaper.api.dependencies import get_feed, get_store
from cosmic_wallpaper.api.routes import router
from cosmic_wallpaper.config import settings
from cosmic_wallpaper.errors import (
    CosmicWallpaperError,
    CredentialRequired,
    GenerationCancelled,
    GenerationError,
    GenerationInProgress,
    ImportMalformed,
    InvalidRequest,
    StoreError,
)

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# CORS configuration
# ---------------------------------------------------------------------------

_DEFAULT_ORIGINS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}


def _get_allowed_origins() -> set[str]:
    origins = set(_DEFAULT_ORIGINS)
    if settings.allowed_origins:
        origins.update(o.strip() for o in settings.allowed_origins.split(",") if o.strip())
    return origins


_ALLOWED_ORIGINS = _get_allowed_origins()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

# Most specific class first
_STATUS_CODES: list[tuple[type[CosmicWallpaperError], int]] = [
    (CredentialRequired, 401),
    (GenerationCancelled, 409),
    (GenerationInProgress, 409),
    (GenerationError, 502),
    (InvalidRequest, 422),
    (ImportMalformed, 400),
    (StoreError, 503),
]


def status_for(exc: CosmicWallpaperError) -> int:
    for exc_type, status in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


async def _domain_error_handler(request: Request, exc: CosmicWallpaperError) -> JSONResponse:
    status = status_for(exc)
    logger.warning(
        "api.request_failed",
        path=request.url.path,
        status=status,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    message = getattr(exc, "user_message", None) or str(exc)
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "message": message, "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the local store on startup; close it and dispose the log feed on shutdown."""
    logger.info("app.startup", database_path=settings.database_path)
    store = get_store()
    await store.open()
    try:
        yield
    finally:
        await store.close()
        get_feed().dispose()
        logger.info("app.shutdown")


app = FastAPI(
    title="Cosmic Wallpaper",
    description="AI wallpaper and short video generator with a local history and library",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_ALLOWED_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(CosmicWallpaperError, _domain_error_handler)

app.include_router(router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}

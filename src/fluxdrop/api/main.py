"""Fluxdrop — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, the REST routes, the JSON error envelope, and
the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** is read per request through the :func:`get_config`
  dependency, so secrets added to the environment take effect without a
  restart and tests can override them.
- **Outbound HTTP** goes through one shared ``httpx.AsyncClient`` created in
  the lifespan handler and stored on ``app.state``.
- **Image generation** is delegated to
  :class:`~fluxdrop.core.orchestrator.ImageOrchestrator`, which calls the
  generation API, the image host, and optionally the record store.
- **Errors** always leave the API as ``{"error": "..."}``.
- **The HTML page** is served as a raw ``HTMLResponse``; the page script
  fetches slider bounds from ``GET /api/config``.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/``                         Serve the main HTML page
GET       ``/api/config``               Version, slider bounds, flags
POST      ``/generate-image``           Generate, upload, (persist) an image
POST      ``/api/generate-image``       Same as above
GET       ``/api/generations``          Paginated stored generation records
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    fluxdrop

Direct invocation::

    python -m fluxdrop.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from fluxdrop import __version__
from fluxdrop.api.models import ErrorResponse, GenerateImageRequest, GenerateImageResponse
from fluxdrop.core.config import FluxdropConfig, config
from fluxdrop.core.errors import PersistenceError
from fluxdrop.core.http import build_async_client
from fluxdrop.core.models import FORM_BOUNDS
from fluxdrop.core.orchestrator import CONFIGURATION_MESSAGES, ImageOrchestrator, OrchestrationFailed
from fluxdrop.core.records import RecordStore, dispose_record_stores, get_record_store

logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle — shared HTTP client setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared HTTP client on startup; close it and the record
    stores on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.http_client = build_async_client(config.request_timeout_seconds)
    logger.info("HTTP client initialised.")

    yield

    await app.state.http_client.aclose()
    logger.info("HTTP client closed on shutdown.")
    await run_in_threadpool(dispose_record_stores)


app = FastAPI(
    title="Fluxdrop",
    description="Text-to-image generation with hosted results.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the page can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=str(config.static_dir)), name="static")


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_config() -> FluxdropConfig:
    """Read configuration from the environment for the current request."""
    return FluxdropConfig()


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Return the shared HTTP client created by :func:`lifespan`."""
    return request.app.state.http_client


def get_store_provider() -> Callable[[str], RecordStore]:
    """Return the factory that maps a database URL to its record store."""
    return get_record_store


def get_orchestrator(
    cfg: FluxdropConfig = Depends(get_config),
    http: httpx.AsyncClient = Depends(get_http_client),
    store_provider: Callable[[str], RecordStore] = Depends(get_store_provider),
) -> ImageOrchestrator:
    """Wire an orchestrator for the current request."""
    return ImageOrchestrator.from_config(cfg, http, store_provider)


# ---------------------------------------------------------------------------
# Error envelope.
# ---------------------------------------------------------------------------


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build the ``{"error": message}`` response every failure uses."""
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request parsing failures.

    Body fields are untyped, so a body error means the body was missing,
    was not valid JSON, or was not a JSON object.  Those answer 500 like any
    other unexpected failure; bad query parameters answer 422.
    """
    errors = exc.errors()
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in errors
    )
    if any(tuple(err.get("loc", ()))[:1] == ("body",) for err in errors):
        logger.error(f"Unreadable request body for {request.url.path}: {problems}")
        return error_response(500, f"Invalid request body: {problems}")
    logger.info(f"Rejected request for {request.url.path}: {problems}")
    return error_response(422, f"Invalid request: {problems}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}")
    return error_response(500, "Internal server error")


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the image generator page.

    Raises:
        StarletteHTTPException: 404 if ``index.html`` is not found.
    """
    index_path = config.templates_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise StarletteHTTPException(status_code=404, detail="index.html not found")


@app.get("/api/config")
async def get_app_config(cfg: FluxdropConfig = Depends(get_config)) -> dict:
    """Return what the page needs to build its form.

    Returns:
        Dictionary with ``version``, ``persistence_enabled`` and ``bounds``
        (one ``{min, max, step, default}`` entry per slider).
    """
    return {
        "version": __version__,
        "persistence_enabled": cfg.persistence_enabled,
        "bounds": {name: asdict(bounds) for name, bounds in FORM_BOUNDS.items()},
    }


@app.post("/generate-image", response_model=None)
@app.post("/api/generate-image", response_model=None)
async def generate_image(
    req: GenerateImageRequest,
    orchestrator: ImageOrchestrator = Depends(get_orchestrator),
) -> dict | JSONResponse:
    """Generate an image, upload it, and optionally store a record.

    Args:
        req: Generation parameters.  Fields are forwarded as given.
        orchestrator: Request-scoped orchestrator.

    Returns:
        ``{"image", "imgbbUrl"}`` plus ``"dbId"`` when persistence is
        enabled.  Failures return ``{"error"}`` with the status chosen by
        the orchestrator.
    """
    try:
        outcome = await orchestrator.run(req.to_generation_request())
    except OrchestrationFailed as e:
        return error_response(e.status_code, e.message)
    except Exception as e:
        logger.exception("Error generating or uploading image")
        return error_response(500, f"Failed to generate or upload image: {e}")

    response = GenerateImageResponse(image=outcome.image, imgbb_url=outcome.imgbb_url, db_id=outcome.db_id)
    return response.model_dump(by_alias=True, exclude_none=True)


@app.get("/api/generations", response_model=None)
async def list_generations(
    page: int = 1,
    per_page: int = 20,
    cfg: FluxdropConfig = Depends(get_config),
    store_provider: Callable[[str], RecordStore] = Depends(get_store_provider),
) -> dict | JSONResponse:
    """Return stored generation records, newest first.

    Args:
        page: Page number (1-indexed).
        per_page: Records per page (1–100).

    Returns:
        Dictionary with ``total``, ``page``, ``per_page``, ``pages`` and
        ``records``.  404 when persistence is disabled.
    """
    if not cfg.persistence_enabled:
        return error_response(404, "Persistence is not enabled")
    if not (cfg.database_url or "").strip():
        logger.error("DATABASE_URL is not set")
        return error_response(500, CONFIGURATION_MESSAGES["database_url"])
    if page < 1 or per_page < 1 or per_page > 100:
        return error_response(400, "page must be >= 1 and per_page between 1 and 100")

    try:
        store = store_provider(cfg.database_url)
        total = await run_in_threadpool(store.count)
        records = await run_in_threadpool(store.list_recent, (page - 1) * per_page, per_page)
    except PersistenceError as e:
        return error_response(500, f"Failed to load generation records: {e}")

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page if total > 0 else 1,
        "records": records,
    }


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~fluxdrop.core.config.config`
    (``FLUXDROP_SERVER_HOST`` and ``FLUXDROP_SERVER_PORT``).  Defaults to
    ``0.0.0.0:7860``.
    """
    import uvicorn

    uvicorn.run(
        "fluxdrop.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

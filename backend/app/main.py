"""FastAPI application entrypoint for the events API."""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import schemas, validation
from .config import Settings
from .errors import MalformedRequestError, StorageError, ValidationError
from .scheduler import AggregationScheduler
from .store import EventStore, SQLAlchemyEventStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_event_store(request: Request) -> EventStore:
    return request.app.state.store


def _error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def create_event(request: Request, store: EventStore = Depends(get_event_store)):
    body = await request.body()
    try:
        event_in = validation.parse_event_request(body)
    except MalformedRequestError as exc:
        return _error_response(status.HTTP_400_BAD_REQUEST, "invalid request", str(exc))
    except ValidationError as exc:
        return _error_response(status.HTTP_400_BAD_REQUEST, "validation failed", str(exc))

    try:
        await asyncio.to_thread(
            store.insert_event,
            event_in.user_id,
            event_in.action,
            validation.metadata_page(event_in.metadata),
        )
    except StorageError as exc:
        logger.error("failed to insert event: %s", exc.__cause__ or exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "failed to insert event")

    return Response(status_code=status.HTTP_201_CREATED)


@router.get("/events", response_model=List[schemas.EventOut])
def list_events(
    user_id: Optional[str] = Query(None, description="Only return events of this user"),
    from_: Optional[str] = Query(None, alias="from", description="Inclusive lower bound"),
    to: Optional[str] = Query(None, description="Inclusive upper bound"),
    store: EventStore = Depends(get_event_store),
):
    try:
        query = validation.parse_events_query(user_id, from_, to)
    except ValidationError as exc:
        return _error_response(status.HTTP_400_BAD_REQUEST, "invalid query", str(exc))

    try:
        return store.get_events(query.user_id, query.start, query.end)
    except StorageError as exc:
        logger.error("failed to query events: %s", exc.__cause__ or exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "failed to fetch events")


@router.get("/health")
def health(store: EventStore = Depends(get_event_store)) -> JSONResponse:
    stats = store.health()
    code = status.HTTP_200_OK if stats.get("status") == "up" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=stats)


async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "HTTP request method=%s path=%s status=%d duration_sec=%.6f client_ip=%s",
        request.method,
        request.url.path,
        response.status_code,
        time.perf_counter() - started,
        request.client.host if request.client else "-",
    )
    return response


def create_app(settings: Optional[Settings] = None, store: Optional[EventStore] = None) -> FastAPI:
    """Build the application.

    An injected ``store`` is used as is and left open on shutdown; otherwise one
    is created from ``settings.database_url`` at start-up and closed again.
    """

    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_store = app.state.store is None
        if owns_store:
            app.state.store = SQLAlchemyEventStore.from_url(settings.database_url)
        scheduler = AggregationScheduler(app.state.store, settings.aggregation_interval_seconds)
        app.state.scheduler = scheduler
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            if owns_store:
                app.state.store.close()
                app.state.store = None

    app = FastAPI(
        title="Events API",
        description="API for collecting user events and rolling them up into per-user counts.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.scheduler = None

    allow_all = "*" in settings.cors_allow_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.middleware("http")(log_requests)
    app.include_router(router, prefix=settings.base_path)
    return app


app = create_app()

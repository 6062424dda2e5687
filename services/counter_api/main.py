"""
FastAPI application for the Be There counter.

Serves the shared click counter and event text as JSON, counts one click
per client according to the configured vote tracker, and lets an admin
holding the shared secret edit the text or reset the counter.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .admin import apply_admin_action
from .config import Settings, settings
from .errors import AuthorizationError, CounterStoreError
from .models import (
    AdminRequest,
    AdminResponse,
    CountResponse,
    ErrorResponse,
    HealthResponse,
    IncrementResponse,
    StateResponse,
)
from .storage import JsonFileStorage, RemoteCounter
from .store import StateStore
from .vote_tracker import VoteTracker, build_vote_tracker

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Prometheus metrics
votes_total = Counter(
    "be_there_votes_total",
    "Clicks received on the Be There button",
    ["result"]
)
admin_actions_total = Counter(
    "be_there_admin_actions_total",
    "Admin actions by outcome",
    ["outcome"]
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)

router = APIRouter()

NO_STORE = {"Cache-Control": "no-store"}


def build_store(app_settings: Settings, track_voters: bool) -> StateStore:
    """Create the state store described by the settings."""
    local = JsonFileStorage(app_settings.DATA_FILE, app_settings.DEFAULT_EVENT_TEXT)
    remote = None
    if app_settings.remote_enabled:
        remote = RemoteCounter.from_url(
            app_settings.REDIS_URL,
            app_settings.REDIS_KEY,
            timeout=app_settings.REDIS_TIMEOUT_SECONDS
        )
    return StateStore(local, remote, track_voters=track_voters)


def get_store(request: Request) -> StateStore:
    return request.app.state.store


def get_tracker(request: Request) -> VoteTracker:
    return request.app.state.tracker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    app_settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting {app_settings.SERVICE_NAME} service...")

    try:
        if app.state.tracker is None:
            app.state.tracker = build_vote_tracker(app_settings)
        if app.state.store is None:
            app.state.store = build_store(
                app_settings,
                track_voters=app.state.tracker.tracks_voters
            )

        store: StateStore = app.state.store
        await store.ensure_initialized()

        if store.remote is not None:
            if await store.remote.ping():
                logger.info("Redis connection established")
            else:
                logger.warning("Redis unreachable at startup, using local storage until it recovers")

        logger.info(f"{app_settings.SERVICE_NAME} started successfully")

    except Exception as e:
        logger.error(f"Failed to start {app_settings.SERVICE_NAME}: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {app_settings.SERVICE_NAME} service...")
    await app.state.store.close()


async def storage_error_handler(request: Request, exc: CounterStoreError) -> JSONResponse:
    logger.error(f"Storage error on {request.url.path}: {exc}")
    body = ErrorResponse(error="storage_write_failed", message="Failed to save counter state")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    body = ErrorResponse(error="unauthorized", message=str(exc))
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=body.model_dump())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    body = ErrorResponse(
        error="malformed_request",
        message="Invalid request body",
        details={"errors": errors}
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


@router.get(
    "/api/state",
    response_model=StateResponse,
    responses={500: {"model": ErrorResponse, "description": "Internal server error"}}
)
async def get_state(request: Request, response: Response) -> StateResponse:
    """
    Get the counter, the event text and whether this client already clicked.
    """
    try:
        store = get_store(request)
        state = await store.get()
        clicked = await get_tracker(request).has_voted(request, store)
        response.headers.update(NO_STORE)
        return StateResponse(count=state.count, event_text=state.event_text, clicked=clicked)

    except Exception as e:
        logger.error(f"Error reading state: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )


@router.get("/api/count", response_model=CountResponse)
async def get_count(request: Request, response: Response) -> CountResponse:
    """Get the counter only."""
    try:
        state = await get_store(request).get()
        response.headers.update(NO_STORE)
        return CountResponse(count=state.count)

    except Exception as e:
        logger.error(f"Error reading count: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read count"
        )


async def increment(request: Request, response: Response) -> IncrementResponse:
    """
    Click the Be There button.

    A client that already clicked gets the current count back and nothing
    changes. Otherwise the count goes up by one and the tracker remembers
    the client (cookie or voter set, depending on the strategy).

    Registered by create_app, rate limited with the app's RATE_LIMIT.
    """
    store = get_store(request)
    tracker = get_tracker(request)

    try:
        if await tracker.has_voted(request, store):
            state = await store.get()
            votes_total.labels(result="duplicate").inc()
            logger.debug("Repeat click ignored")
            count = state.count
        else:
            count = await store.increment(tracker.voter_key(request))
            await tracker.record_vote(request, response, store)
            votes_total.labels(result="accepted").inc()
            logger.info(f"Click counted: count={count}")

        response.headers.update(NO_STORE)
        return IncrementResponse(count=count, clicked=True)

    except CounterStoreError:
        raise
    except Exception as e:
        logger.error(f"Error counting click: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to increment"
        )


@router.post(
    "/api/admin",
    response_model=AdminResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed request body"},
        401: {"model": ErrorResponse, "description": "Invalid admin password"},
        500: {"model": ErrorResponse, "description": "Failed to save counter state"}
    }
)
async def admin(request: Request, action: AdminRequest) -> AdminResponse:
    """
    Edit the event text and/or reset the counter.

    - **password**: shared admin secret
    - **eventText**: new event text (optional)
    - **resetCount**: reset the counter and forget voters (default false)
    """
    try:
        state = await apply_admin_action(
            get_store(request),
            request.app.state.settings.ADMIN_PASSWORD,
            action
        )
        admin_actions_total.labels(outcome="applied").inc()
        return AdminResponse(count=state.count, event_text=state.event_text)

    except AuthorizationError:
        admin_actions_total.labels(outcome="unauthorized").inc()
        raise
    except CounterStoreError:
        admin_actions_total.labels(outcome="failed").inc()
        raise
    except Exception as e:
        admin_actions_total.labels(outcome="failed").inc()
        logger.error(f"Error applying admin action: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        503: {"model": HealthResponse, "description": "Service unhealthy"}
    }
)
async def health_check(request: Request) -> JSONResponse:
    """
    Check the storage backends.

    The service is unhealthy when the local file cannot be written, and
    degraded (still answering) when the remote counter is unreachable.
    """
    try:
        services = await get_store(request).check_health()
    except Exception as e:
        logger.error(f"Health check error: {e}")
        services = {"local_file": "error"}

    if services.get("local_file") != "writable":
        overall_status = "unhealthy"
    elif services.get("redis", "connected") != "connected":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE if overall_status == "unhealthy"
        else status.HTTP_200_OK
    )

    body = HealthResponse(
        status=overall_status,
        services=services,
        timestamp=datetime.utcnow()
    )

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json")
    )


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get("/api")
async def service_info(request: Request):
    """Service information and endpoint listing."""
    app_settings: Settings = request.app.state.settings
    return {
        "service": app_settings.SERVICE_NAME,
        "version": app_settings.API_VERSION,
        "status": "running",
        "vote_tracker": app_settings.VOTE_TRACKER,
        "endpoints": {
            "state": "/api/state",
            "count": "/api/count",
            "increment": "/api/increment",
            "admin": "/api/admin",
            "health": "/health",
            "metrics": "/metrics"
        }
    }


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[StateStore] = None,
    tracker: Optional[VoteTracker] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the environment settings)
        store: Pre-built state store; built from settings at startup if omitted
        tracker: Pre-built vote tracker; built from settings at startup if omitted
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Be There Counter",
        description="Shared RSVP click counter with an editable event text",
        version=app_settings.API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.store = store
    app.state.tracker = tracker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=app_settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=app_settings.CORS_ALLOW_METHODS,
        allow_headers=app_settings.CORS_ALLOW_HEADERS,
    )

    # Add rate limiter (one per app)
    limiter = Limiter(key_func=get_remote_address, enabled=app_settings.RATE_LIMIT_ENABLED)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(CounterStoreError, storage_error_handler)
    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        """Middleware to track request duration."""
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        request_duration.labels(
            method=request.method,
            endpoint=getattr(route, "path", "unmatched"),
            status=response.status_code
        ).observe(time.perf_counter() - start)
        return response

    app.include_router(router)
    app.add_api_route(
        "/api/increment",
        limiter.limit(app_settings.RATE_LIMIT)(increment),
        methods=["POST"],
        response_model=IncrementResponse,
        responses={
            429: {"description": "Rate limit exceeded"},
            500: {"model": ErrorResponse, "description": "Failed to save counter state"}
        }
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "counter_api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .access_log import AccessLogMiddleware
from .config import reload_settings, settings
from .errors import NewsletterError
from .logging_setup import init_logging
from .metrics import LAT, REQS, router as metrics_router
from .models import (
    ErrorResponse,
    Health,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionData,
)
from .publisher import Publisher, build_publisher
from .ratelimit import allow
from .store import SubscriptionStore
from .subscriptions import subscribe

logger = logging.getLogger("newsletter_api")

API_PREFIX = "/api/newsletter"


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    init_logging(settings.LOG_LEVEL)
    store = SubscriptionStore(settings.DATABASE_URL)
    try:
        store.init_db()
    except SQLAlchemyError as exc:
        logger.critical("database initialisation failed: %s", exc)
        store.close()
        raise RuntimeError("cannot start without the subscription store") from exc
    logger.info("database ready at %s", store.engine.url.render_as_string(hide_password=True))

    publisher = build_publisher(
        settings.REDIS_URL,
        timeout=settings.PUBLISH_TIMEOUT_SECONDS,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
    )
    app.state.store = store
    app.state.publisher = publisher

    base = f"http://localhost:{settings.PORT}"
    logger.info("Newsletter API listening on port %s", settings.PORT)
    logger.info("Health check: %s/health", base)
    logger.info("API base: %s%s", base, API_PREFIX)
    try:
        yield
    finally:
        app.state.publisher.close()
        app.state.store.close()


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="Newsletter API", version=__version__, lifespan=lifespan)
app.include_router(metrics_router())

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _fail(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(message=message, error=error)
    return JSONResponse(
        body.model_dump(exclude_none=True), status_code=status_code
    )


def _error_detail(exc: BaseException) -> str:
    return str(exc) if settings.diagnostic else "Internal server error"


def _route_label(request: Request) -> str:
    """Label metrics by route template so arbitrary URLs add no new series."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


@app.middleware("http")
async def _metrics_and_rate(request: Request, call_next):
    method = request.method
    start = time.time()
    status_code = 500
    try:
        if settings.RATE_LIMIT_ENABLED:
            client_host = request.client.host if request.client else "unknown"
            if not allow(client_host, settings.RATE_LIMIT_RPS, settings.RATE_LIMIT_BURST):
                response = _fail(429, "Too many requests")
                status_code = response.status_code
                return response
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        path = _route_label(request)
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(time.time() - start)


# Outermost, so rate-limited responses also carry a request ID.
app.add_middleware(AccessLogMiddleware)


@app.exception_handler(NewsletterError)
async def _newsletter_error(request: Request, exc: NewsletterError):
    if exc.status_code >= 500:
        cause = exc.__cause__ or exc
        return _fail(exc.status_code, exc.message, _error_detail(cause))
    return _fail(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def _bad_body(request: Request, exc: RequestValidationError):
    logger.info("rejected request body on %s: %s", request.url.path, exc.errors())
    return _fail(400, "Invalid request body")


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405):
        return _fail(404, "Route not found")
    return _fail(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _fail(500, "Something went wrong!", _error_detail(exc))


def get_store(request: Request) -> SubscriptionStore:
    return request.app.state.store


def get_publisher(request: Request) -> Publisher:
    return request.app.state.publisher


@app.get("/")
def root():
    return {
        "message": "Newsletter API",
        "version": __version__,
        "endpoints": {
            "subscribe": f"POST {API_PREFIX}/subscribe",
            "health": "GET /health",
            "metrics": "GET /metrics",
        },
    }


@app.get("/health", response_model=Health)
def health(store: SubscriptionStore = Depends(get_store)):
    return Health(
        status="OK",
        message="Newsletter API is running",
        timestamp=datetime.now(timezone.utc).isoformat(),
        database="Connected" if store.ping() else "Disconnected",
    )


@app.post(
    f"{API_PREFIX}/subscribe",
    status_code=201,
    response_model=SubscribeResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def subscribe_to_newsletter(
    payload: Optional[SubscribeRequest] = Body(default=None),
    store: SubscriptionStore = Depends(get_store),
    publisher: Publisher = Depends(get_publisher),
):
    payload = payload or SubscribeRequest()
    result = await subscribe(store, publisher, payload.email, payload.preferences)
    return SubscribeResponse(
        message="Successfully subscribed to newsletter",
        data=SubscriptionData(
            email=result.email,
            subscribed_at=result.subscribed_at.isoformat(),
        ),
    )

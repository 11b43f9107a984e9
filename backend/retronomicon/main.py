from fastapi import FastAPI, Response, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging
import os
import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from .errors import (
    Conflict,
    Forbidden,
    IngestError,
    InvalidSlug,
    InvalidVersion,
    MissingPlatform,
    NotFound,
    RetronomiconError,
    Unavailable,
)
from .routes import (
    audit,
    cores,
    games,
    platforms,
    releases,
    systems,
    tags,
    teams,
    users,
)

logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)

app = FastAPI(title="Retronomicon API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)


def status_for(exc: RetronomiconError) -> int:
    if isinstance(exc, (InvalidSlug, InvalidVersion, MissingPlatform)):
        return 400
    if isinstance(exc, Forbidden):
        return 403
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, Conflict):
        return 409
    if isinstance(exc, IngestError):
        return 413 if exc.reason == "too_large" else 422
    if isinstance(exc, Unavailable):
        return 503
    return 500


@app.exception_handler(RetronomiconError)
async def handle_domain_error(request: Request, exc: RetronomiconError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"Retry-After": "5"} if isinstance(exc, Unavailable) else None
    return JSONResponse(exc.to_dict(), status_code=status_code, headers=headers)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(users.router)
app.include_router(teams.router)
app.include_router(platforms.router)
app.include_router(systems.router)
app.include_router(cores.router)
app.include_router(tags.router)
app.include_router(games.router)
app.include_router(releases.router)
app.include_router(audit.router)


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_user, get_optional_user

    # read-only catalog routes take an optional user; everything else requires one
    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api"):
            calls = [dep.call for dep in route.dependant.dependencies]
            if get_current_user in calls:
                continue
            if get_optional_user in calls and route.methods == {"GET"}:
                continue
            raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()

"""
POS terminal order engine API.
FastAPI front for one terminal: composes orders against the remote POS backend and keeps them in sync.
"""
from __future__ import annotations

import time
import uuid as uuid_lib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response

from pos_terminal.api import catalog, orders, sync
from pos_terminal.config import get_settings
from pos_terminal.core.errors import OrderEngineError, ValidationFailed
from pos_terminal.core.logging import get_logger, request_id_ctx
from pos_terminal.services.registry import get_registry

# package-level handler; service modules log through child loggers
logger = get_logger("pos_terminal")
settings = get_settings()

# error reporting is off unless SENTRY_DSN is set
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1,
        integrations=[FastApiIntegration()],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_registry().close_all()


app = FastAPI(
    title="POS Terminal Order API",
    description="Order composition, variant selection, pricing and multi-terminal sync for a POS terminal.",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "orders", "description": "Compose and close orders"},
        {"name": "catalog", "description": "Variant configurations for menu items and deals"},
        {"name": "sync", "description": "Change notifications from other terminals"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# per-route HTTP metrics; order mutation and resync counters live in core.metrics
REQUEST_COUNT = Counter("http_requests_total", "Total requests", ["method", "path", "status"])
REQUEST_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["method", "path"])


@app.middleware("http")
async def request_id_and_metrics(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid_lib.uuid4())
    request_id_ctx.set(request_id)
    start = time.perf_counter()
    path = request.scope.get("path", "")
    method = request.scope.get("method", "")
    response = await call_next(request)
    duration = time.perf_counter() - start
    REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(OrderEngineError)
async def order_engine_error(request: Request, exc: OrderEngineError) -> JSONResponse:
    content = {"detail": exc.message}
    if isinstance(exc, ValidationFailed) and exc.missing:
        content["missing"] = exc.missing
    if exc.status_code >= 500:
        logger.warning("backend_unavailable", extra={"error": exc.message})
    return JSONResponse(status_code=exc.status_code, content=content)


prefix = settings.api_prefix
app.include_router(orders.router, prefix=prefix)
app.include_router(catalog.router, prefix=prefix)
app.include_router(sync.router, prefix=prefix)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type="text/plain")


@app.get("/")
async def root():
    return {"message": "POS Terminal Order API", "docs": "/docs"}

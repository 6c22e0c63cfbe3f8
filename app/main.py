"""
Visit Analytics API — page-view tracking and per-user aggregates
Session resolution · Dwell time · Summary reports · Structured Logging
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.database import dispose_db, init_db
from app.core.errors import InputValidationError, NotFoundError, StoreError
from app.core.limiter import limiter
from app.core.logging import get_logger, setup_logging
from app.middleware.audit import RequestLogMiddleware
from app.routers import analytics, health, tracking

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "api.startup",
        version=settings.API_VERSION,
        env=settings.ENVIRONMENT,
        rate_limits=settings.RATE_LIMIT_ENABLED,
    )
    await init_db()
    yield
    await dispose_db()
    logger.info("api.shutdown")


app = FastAPI(
    title="Visit Analytics API",
    description="""
## Web Visit Analytics

Ingests page loads and page exits from the browser tracker and keeps a running
aggregate per visitor.

- **Tracking** — `POST /api/v1/track/events` opens a page view (and a session when none
  is supplied); `POST /api/v1/track/page-views/end` closes it and records dwell time
- **Reporting** — summary, sessions, page views and per-user aggregates, all filterable
  by date range, country, device type, page URL and new/returning visitors

### Summary metrics

| Metric | Meaning |
|--------|---------|
| `bounce_rate` | % of sessions with exactly one page view |
| `average_session_duration` | mean seconds per closed page view |
| `new_users` / `returning_users` | sessions flagged new / returning |
| `browser_breakdown` | distinct visitors per browser, as shares of 100 |
    """,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware (last added runs outermost) ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,  # tracker beacons are anonymous
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestLogMiddleware)

# ── Rate limit error handler ───────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ── Domain error handlers ──────────────────────────────────────────────────────
def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning("api.not_found", entity=exc.entity, entity_id=exc.entity_id)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "request_id": _request_id(request)},
    )


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    logger.warning("api.invalid_input", field=exc.field, error=str(exc))
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "field": exc.field, "request_id": _request_id(request)},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("api.store_error", operation=exc.operation, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable", "request_id": _request_id(request)},
    )


# ── Global exception handler ───────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "api.unhandled_error", path=request.url.path, method=request.method, exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": _request_id(request)},
    )


# ── Routers ────────────────────────────────────────────────────────────────────
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(tracking.router, prefix="/api/v1/track", tags=["Tracking"])
app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["Analytics"])

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import router as api_v1_router
from app.core.config import settings as app_settings
from app.core.database import engine
from app.core.exceptions import (
    InvalidOverridePayloadError,
    InvalidOverrideScopeError,
    OverrideNotFoundError,
)
from app.core.rate_limit import limiter
from app.core.ruleset_cache import RulesetCache

# Configure logging
logging.basicConfig(level=getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the ruleset engine configuration and release the DB pool on exit."""
    logger.info(
        "Ruleset engine started (db overrides %s, cache ttl=%ss, max=%d)",
        "enabled" if app_settings.RULESET_DB_OVERRIDES_ENABLED else "disabled",
        app_settings.RULESET_CACHE_TTL_SECONDS,
        app_settings.RULESET_CACHE_MAX_ENTRIES,
    )
    yield
    await engine.dispose()
    logger.info("Database engine disposed")


app = FastAPI(
    title="ASO Ruleset Engine",
    description="Layered ruleset resolution and scoring overrides for app metadata audits",
    version="0.1.0",
    lifespan=lifespan,
)

# One resolution cache per application instance
app.state.ruleset_cache = RulesetCache(
    ttl_seconds=app_settings.RULESET_CACHE_TTL_SECONDS,
    max_entries=app_settings.RULESET_CACHE_MAX_ENTRIES,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(OverrideNotFoundError)
async def override_not_found_handler(request: Request, exc: OverrideNotFoundError):
    logger.warning("Override not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "override_not_found"},
    )


@app.exception_handler(InvalidOverrideScopeError)
async def invalid_override_scope_handler(
    request: Request, exc: InvalidOverrideScopeError
):
    logger.warning("Invalid override scope: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_override_scope"},
    )


@app.exception_handler(InvalidOverridePayloadError)
async def invalid_override_payload_handler(
    request: Request, exc: InvalidOverridePayloadError
):
    logger.warning("Invalid override payload: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_override_payload"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_errors(exc),
            "type": "validation_error",
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Return validation errors with non-JSON ``ctx`` values stringified."""
    return jsonable_encoder(exc.errors(), custom_encoder={ValueError: str})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )

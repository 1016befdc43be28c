import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

import health
from app import router as visits_router
from config import Settings, configure_logging
from countries import CountryData
from database import create_redis_client, wait_for_redis
from exceptions import BackendUnavailable, InvalidCountryCode
from middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from models import VisitTracker
from schema import ErrorDetail

logger = logging.getLogger(__name__)


def _error_body(settings: Settings, message: str, exc: Exception) -> dict:
    body = {"success": False, "message": message}
    if not settings.is_production:
        body["error"] = str(exc)
    return body


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(InvalidCountryCode)
    async def invalid_country_code_handler(request: Request, exc: InvalidCountryCode):
        logger.warning(f"Invalid country code {exc.country_code!r} on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": str(exc),
                "errors": [ErrorDetail(field="countryCode", message=str(exc)).model_dump()],
            },
        )

    @app.exception_handler(BackendUnavailable)
    async def backend_unavailable_handler(request: Request, exc: BackendUnavailable):
        logger.error(
            f"Backend error on {request.method} {request.url.path}: {exc} (cause: {exc.__cause__!r})"
        )
        return JSONResponse(status_code=503, content=_error_body(settings, "Database connection error", exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            ErrorDetail(
                field=".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path")),
                message=err["msg"],
            ).model_dump()
            for err in exc.errors()
        ]
        logger.warning(f"Validation error on {request.method} {request.url.path}: {errors}")
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation error", "errors": errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        if exc.status_code == 404 and message == "Not Found":
            message = f"Not Found - {request.url.path}"
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit exceeded for {get_remote_address(request)}: {exc.detail}")
        return JSONResponse(
            status_code=429,
            content={"success": False, "message": "Too many requests from this IP, please try again later."},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=_error_body(settings, "Internal Server Error", exc))


def create_app(
    settings: Optional[Settings] = None,
    redis_client: Optional[redis.Redis] = None,
    countries: Optional[CountryData] = None,
    wait_for_backend: bool = True,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    if redis_client is None:
        redis_client = create_redis_client(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if wait_for_backend:
            # Backoff sleeps must not block the event loop
            await run_in_threadpool(wait_for_redis, app.state.redis, attempts=settings.redis_startup_attempts)
        logger.info(f"{settings.service_name} {settings.version} started (environment: {settings.env})")
        yield
        logger.info("Shutting down, closing Redis connection")
        app.state.redis.close()

    app = FastAPI(title="Visit Tracker API", version=settings.version, lifespan=lifespan)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.tracker = VisitTracker(
        redis_client, countries=countries, stats_cache_ttl=settings.effective_stats_cache_ttl
    )
    app.state.started_at = time.monotonic()
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        storage_uri=settings.rate_limit_storage,
        enabled=settings.rate_limit_enabled,
    )

    # Last added runs first: CORS -> GZip -> security headers -> logging -> size limit -> rate limit
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    app.add_middleware(RequestLoggingMiddleware, slow_request_ms=settings.slow_request_ms)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.is_production)
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app, settings)

    app.include_router(health.router)
    app.include_router(visits_router)

    @app.get("/")
    def read_root():
        return {
            "success": True,
            "message": "Website Visit Tracker API",
            "version": settings.version,
            "endpoints": {
                "health": "/health",
                "trackVisit": "POST /api/visits/track",
                "trackVisits": "POST /api/visits/track/batch",
                "getStats": "GET /api/visits/stats",
                "getCountryStats": "GET /api/visits/stats/:countryCode",
                "getTopCountries": "GET /api/visits/top",
                "getTotal": "GET /api/visits/total",
                "getCountries": "GET /api/visits/countries",
                "getCountryInfo": "GET /api/visits/countries/:countryCode",
                "resetStats": "DELETE /api/visits/reset",
            },
        }

    return app


# Served with `uvicorn main:app`
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)

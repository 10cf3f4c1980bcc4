"""
FastAPI Application Entry Point

Creates and configures the Book Discovery API.

1. Application Factory
   - create_app() returns a configured app (tests build their own)

2. Lifespan
   - startup: connect Redis, Elasticsearch and the Google Books client
     once and share them through app.state
   - shutdown: close those connections

3. Middleware
   - slowapi rate limiting
   - CORS for the browser frontend

4. Exception Handlers
   - Every error is returned in the {success, message, errors} envelope
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from app.config import get_settings
from app.routers import auth_router, books_router, favorites_router
from app.services.cache import ResponseCache
from app.services.google_books import GoogleBooksClient
from app.services.rate_limiter import limiter, rate_limit_exceeded_handler
from app.services.search_index import SearchIndexClient, SearchIndexError, create_es_client

# =============================================================================
# Logging Configuration
# =============================================================================
settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan Events
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Code before yield runs on startup, code after yield on shutdown.

    Redis and Elasticsearch are optional at startup: when either is
    unreachable the app still starts and degrades (no caching, search
    falls back to Google Books only).
    """
    # ----- STARTUP -----
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"API version: {settings.api_version}")

    cache = ResponseCache.from_url(settings.redis_url, namespace=settings.cache_key_prefix)
    if not cache.enabled:
        logger.warning("Redis unavailable - caching disabled")

    search_index = SearchIndexClient(create_es_client(settings), cache, settings)
    if search_index.enabled:
        try:
            search_index.configure()
        except SearchIndexError as e:
            logger.error(f"Failed to configure search index: {e}")
    else:
        logger.warning("Elasticsearch unavailable - search uses Google Books only")

    app.state.cache = cache
    app.state.search_index = search_index
    app.state.google_books = GoogleBooksClient(cache, settings)

    yield

    # ----- SHUTDOWN -----
    logger.info(f"Shutting down {settings.app_name}...")
    app.state.google_books.close()
    search_index.close()
    cache.close()


# =============================================================================
# Exception Handlers
# =============================================================================

def error_response(status_code: int, message: str, errors: dict | None = None, headers=None) -> JSONResponse:
    content: dict = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Collapse pydantic errors into {field: [messages]}.

    The field is the last element of the error location, so a body field
    and a query parameter of the same name share an entry.
    """
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = loc[-1] if loc else "request"
        message = error.get("msg", "Invalid value")
        # pydantic prefixes ValueError messages raised in validators
        message = message.removeprefix("Value error, ")
        errors.setdefault(field, []).append(message)

    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation errors", errors)


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log the database error, hide its details from the client."""
    logger.error(f"Database error: {exc}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "A database error occurred. Please try again later.",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    message = str(exc) if settings.debug else "An internal error occurred."
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


# =============================================================================
# Application Factory
# =============================================================================
def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="""
## Book Discovery API

Search, browse and favorite books.

### Features
- **Hybrid search**: Elasticsearch and Google Books combined, with new
  books stored and indexed as they are found
- **Suggestions**: autocomplete with graceful fallbacks
- **Favorites**: per-user favorite books

### Authentication
Bearer JWT from `/api/v1/auth/login`.
        """,
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------
    # The limiter must live on app.state for the @limiter.limit decorators
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache-Status"],
    )

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # -------------------------------------------------------------------------
    # Register Routers
    # -------------------------------------------------------------------------
    api_prefix = f"/api/{settings.api_version}"
    app.include_router(books_router, prefix=api_prefix)
    app.include_router(favorites_router, prefix=api_prefix)
    app.include_router(auth_router, prefix=api_prefix)

    # -------------------------------------------------------------------------
    # Health Check Endpoint
    # -------------------------------------------------------------------------
    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check",
        description="API status with cache and search index connectivity.",
    )
    def health_check(request: Request) -> dict:
        """Used by load balancers and monitoring."""
        cache: ResponseCache | None = getattr(request.app.state, "cache", None)
        index: SearchIndexClient | None = getattr(request.app.state, "search_index", None)

        index_healthy = index.is_healthy() if index is not None else False

        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.api_version,
            "cache": cache.stats() if cache is not None else {"status": "disconnected"},
            "elasticsearch": {
                "enabled": settings.elasticsearch_enabled,
                "healthy": index_healthy,
                "document_count": index.document_count() if index_healthy else 0,
            },
            "rate_limiting": {
                "enabled": settings.rate_limit_enabled,
                "default_limit": settings.rate_limit_default,
            },
        }

    @app.get(
        "/",
        tags=["Root"],
        summary="API root",
    )
    def root() -> dict:
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# uvicorn app.main:app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

"""FastAPI application exposing the indexer read and operations surface."""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from common.errors import LaunchpadError
from indexer.service.core import IndexerService
from .dependencies import configure_service
from .responses import error
from .routes import health_router, indexer_router, jobs_router, market_router, tokens_router

logger = logging.getLogger(__name__)


def create_app(service: IndexerService, cors_origins: Optional[list] = None) -> FastAPI:
    """
    Build the FastAPI app around an already constructed service.

    Args:
        service: IndexerService shared by every router
        cors_origins: allowed origins, defaults to the app config
    """
    configure_service(service)
    api_prefix = f"/api/{service.config.app.api_version}"

    app = FastAPI(title="Launchpad Indexer", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else service.config.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LaunchpadError)
    async def launchpad_error_handler(request: Request, exc: LaunchpadError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error(exc.message, exc.status_code)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return error(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error(f"Invalid request: {exc.errors()}", 400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        message = 'Internal server error' if service.config.app.is_production else str(exc)
        return error(message, 500)

    app.include_router(health_router)
    app.include_router(indexer_router, prefix=api_prefix)
    app.include_router(tokens_router, prefix=api_prefix)
    app.include_router(market_router, prefix=api_prefix)
    app.include_router(jobs_router, prefix=api_prefix)
    return app

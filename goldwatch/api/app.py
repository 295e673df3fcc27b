"""FastAPI application factory."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from goldwatch.api.deps import AppState
from goldwatch.api.routes import router
from goldwatch.exceptions import (
    AggregateFailureError,
    AlertValidationError,
    InvestmentValidationError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def create_app(state: AppState) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="GoldWatch API",
        description="Gold price tracking and alerting",
        version="0.1.0",
    )
    app.state.app_state = state

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(AggregateFailureError)
    async def aggregate_failure_handler(request: Request, exc: AggregateFailureError):
        logger.error(f"{request.url.path}: {exc}")
        return JSONResponse(
            status_code=502,
            content={
                "error": type(exc).__name__,
                "detail": str(exc),
                "sources": exc.as_dict(),
            },
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"{request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.exception_handler(InvestmentValidationError)
    @app.exception_handler(AlertValidationError)
    async def validation_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app

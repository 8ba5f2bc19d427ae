"""
Main FastAPI application for the matchday team engine.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from matchday.api.common import engine_error_handler
from matchday.api.routes import matches, players, voting
from matchday.core.config import settings
from matchday.core.database import init_db
from matchday.core.errors import EngineError
from matchday.core.logging import configure_logging, get_logger
from matchday.core.middleware import CorrelationIdMiddleware

# Configure structured logging with JSON formatter
configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    init_db()
    logger.info("Application started")

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Lineups, substitutions, playing time and player-of-the-match voting for amateur teams",
    lifespan=lifespan,
)
app.add_exception_handler(EngineError, engine_error_handler)
app.add_middleware(CorrelationIdMiddleware)

# API v1 - all routes use the /api/v1 prefix for versioning
app.include_router(players.router, prefix="/api/v1")
app.include_router(matches.router, prefix="/api/v1")
app.include_router(voting.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "api_version": "v1",
            "players": "/api/v1/teams/{team_id}/players",
            "matches": "/api/v1/matches/{match_id}",
            "voting": "/api/v1/matches/{match_id}/votes",
            "docs": "/docs",
            "health": "/health",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "matchday.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )

"""
Main FastAPI application entry point for the round engine.

This is the core application file that:
- Initializes FastAPI with lifespan management
- Wires the round services to WebSocket event delivery
- Optionally runs the round scheduler in-process
- Configures CORS for frontend integration
- Maps round engine errors to HTTP responses
- Provides health check endpoints
"""

from contextlib import asynccontextmanager
from typing import Dict

import logfire
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import (
    bets_router,
    price_router,
    rounds_router,
    wallet_router,
    websocket_router,
)
from config import settings
from database import check_db_connection, close_db, init_db
from observability import __version__, initialize_logfire
from scheduler import build_async_scheduler
from services.round_engine import configure_round_engine
from services.websocket_service import websocket_service
from utils.errors import RoundsError, format_api_error
from utils.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    configure_logging(settings.log_level)
    # Initialize Logfire first so we can use structured logging
    initialize_logfire(settings, service_name="updown-rounds-api")

    logfire.info(
        "Starting round engine API server",
        environment=settings.environment,
        debug=settings.debug,
    )

    await init_db()
    db_connected = await check_db_connection()
    if db_connected:
        logfire.info("Database connection successful")
    else:
        logfire.error("Database connection failed")

    engine = configure_round_engine(events=websocket_service)

    scheduler = None
    if settings.scheduler_in_api:
        await engine.scheduler.initialize()
        scheduler = build_async_scheduler(engine, settings)
        scheduler.start()
        logfire.info(
            "Round scheduler running in API process",
            tick_seconds=settings.round_tick_seconds,
        )

    logfire.info("Round engine API server startup complete")

    yield

    # Shutdown
    logfire.info("Shutting down round engine API server")
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await close_db()


# Initialize FastAPI app
app = FastAPI(
    title="Up/Down Rounds API",
    description="Timed up/down price prediction rounds with pari-mutuel settlement",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RoundsError)
async def rounds_error_handler(request: Request, exc: RoundsError) -> JSONResponse:
    """Return round engine errors with their specific code."""
    return JSONResponse(status_code=exc.status_code, content=format_api_error(exc))


# ============================================================================
# Health Check Endpoints
# ============================================================================

@app.get("/health", tags=["Health"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint for load balancers and monitoring.

    Returns:
        dict: Health status of the application and database
    """
    db_connected = await check_db_connection()

    return {
        "status": "healthy" if db_connected else "degraded",
        "service": "updown-rounds-api",
        "version": __version__,
        "database": "connected" if db_connected else "disconnected",
        "environment": settings.environment,
    }


@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    """
    Root endpoint - API information.

    Returns:
        dict: Basic API information
    """
    return {
        "name": "Up/Down Rounds API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ============================================================================
# API Routers
# ============================================================================

app.include_router(rounds_router)
app.include_router(bets_router)
app.include_router(wallet_router)
app.include_router(price_router)
app.include_router(websocket_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )

"""
Claw Backend API - FastAPI Application

Main FastAPI application with CORS, lifespan events, and route registration.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import dependencies
from backend.dependencies import cleanup_resources, initialize_resources
from src.utilities.config import get_config
from src.utilities.utils import setup_logging

logger = logging.getLogger(__name__)

# CORS origins are read once at import time; everything else at startup
_startup_config = get_config(from_env=True)


# ========== LIFESPAN EVENTS ==========
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup:
        - Configure logging
        - Open database and stores
        - Create the session coordinator
        - Start the pending-generation sweeper

    Shutdown:
        - Stop the sweeper
        - Close open streams and wait for running generations
        - Cleanup resources
    """
    config = get_config(from_env=True)
    setup_logging(config)
    logger.info("🚀 Starting Claw Backend API...")

    try:
        # Initialize shared resources
        initialize_resources(config)
        logger.info("✅ Resources initialized successfully")

    except Exception as e:
        logger.error(f"❌ Failed to initialize resources: {e}")
        raise

    coordinator = dependencies.get_initialized_coordinator()
    sweeper = asyncio.create_task(coordinator.sweep_pending(config.streaming.sweep_interval))

    logger.info("=" * 60)
    logger.info(f"Claw Backend API is ready! (external API: {config.external_api.base_url})")
    logger.info(f"Docs: http://localhost:{config.server.port}/docs")
    logger.info("=" * 60)

    # Application is running
    yield

    # Shutdown: cleanup resources
    logger.info("🛑 Shutting down Claw Backend API...")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await coordinator.shutdown()
    cleanup_resources()
    logger.info("✅ Cleanup complete")


# ========== FASTAPI APP ==========
app = FastAPI(
    title="Claw Game Generation API",
    description="Backend API for Claw - AI game generation streamed over Server-Sent Events",
    version=_startup_config.version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ========== CORS MIDDLEWARE ==========
# Allow frontend to communicate with backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=_startup_config.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


# ========== EXCEPTION HANDLERS ==========
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for uncaught errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc),
            "type": type(exc).__name__,
        },
    )


# ========== ROOT ENDPOINT ==========
@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "name": "Claw Game Generation API",
        "version": _startup_config.version,
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "health": "/health",
            "auth": "/api/auth/register, /api/auth/login, /api/auth/me",
            "conversations": "/api/conversations/*",
            "stream": "/api/conversations/{conversationId}/messages/{messageId}/stream",
        },
    }


# ========== ROUTE REGISTRATION ==========
from backend.api import auth, conversations, health

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(conversations.router)


if __name__ == "__main__":
    import uvicorn

    # Run with: python -m backend.app
    # Or: uvicorn backend.app:app --reload --host 0.0.0.0 --port 8000
    uvicorn.run(
        "backend.app:app",
        host=_startup_config.server.host,
        port=_startup_config.server.port,
        reload=True,
        log_level="info",
    )

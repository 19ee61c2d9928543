"""
Stock Count Sync — Main Application

FastAPI application entry point. Hosts the relay that counting devices
connect to, plus read-only session endpoints.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from datetime import datetime

from config import settings, check_connection, configure_logging
from services.relay_service import get_relay_hub

# Configure structured logging
configure_logging(settings)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Report the sync backend and cloud connection
    Shutdown: Log relay sessions still held in memory
    """
    # Startup
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
        sync_backend=settings.sync_backend
    )

    if settings.sync_backend == "cloud":
        db_status = check_connection()
        if db_status["status"] == "healthy":
            logger.info(
                "database_connected",
                sessions=db_status["sessions_count"]
            )
        else:
            logger.error(
                "database_connection_failed",
                status=db_status["status"],
                error=db_status.get("error")
            )

    yield

    # Shutdown
    logger.info(
        "application_shutting_down",
        relay_sessions=len(get_relay_hub().sessions)
    )


# Create FastAPI app
app = FastAPI(
    title="Stock Count Sync",
    description="Multi-device stock counting against an imported inventory spreadsheet",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Relay state and, for the cloud backend, database connection state
    """
    hub = get_relay_hub()
    db_status = check_connection()

    healthy = settings.sync_backend != "cloud" or db_status["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "sync_backend": settings.sync_backend,
        "relay": {
            "sessions": len(hub.sessions),
            "members": len(hub.members),
        },
        "database": db_status
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Stock Count Sync API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "relay": "/ws/relay",
            "sessions": "/api/sessions/{session_id}",
            "stats": "/api/sessions/{session_id}/stats",
            "export": "/api/sessions/{session_id}/export",
            "share": "/api/sessions/{session_id}/share"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.relay import router as relay_router
from routes.sessions import router as sessions_router

app.include_router(relay_router, tags=["Relay"])
app.include_router(sessions_router, prefix="/api/sessions", tags=["Sessions"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )

"""
Main FastAPI application for Automatenance maintenance predictions.
Serves the prediction refresh engine and read endpoints.
"""

import logging
from contextlib import asynccontextmanager

from automatenance.config import settings
from automatenance.exceptions import RefreshError
from automatenance.routes import health, predictions
from automatenance.services.database import close_db, init_db
from automatenance.services.redis_client import close_redis, init_redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    await init_db()
    await init_redis()
    logger.info("Automatenance prediction service started")

    yield
    # Shutdown
    await close_db()
    await close_redis()


app = FastAPI(
    title="Automatenance Predictions",
    description="Maintenance prediction refresh engine",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(RefreshError)
async def refresh_error_handler(request: Request, exc: RefreshError):
    """Map refresh aborts (401/403/429) to a JSON error body."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Register routes
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(predictions.router, prefix="/api/v1/predictions", tags=["predictions"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Automatenance Predictions",
        "version": "1.0.0",
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("automatenance.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)

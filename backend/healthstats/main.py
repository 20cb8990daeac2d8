"""
HealthStats Ingest - FastAPI application exposing the ingestion trigger.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .api import ingest_router
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Storage: {settings.storage_type} ({settings.aws_bucket_name or settings.local_storage_path})")
    yield
    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Streams exported health records into per-metric snapshots",
    lifespan=lifespan
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(ingest_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("healthstats.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

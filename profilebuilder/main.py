"""
Main FastAPI application.

Profile build service: trigger builds, read status and quality.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from profilebuilder.api.v1 import people
from profilebuilder.core.config import get_settings
from profilebuilder.core.database import create_tables, get_engine
from profilebuilder.jobs.refresh_scheduler import register_refresh_checker, start_scheduler, stop_scheduler

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the refresh scheduler on startup."""
    settings = get_settings()
    logger.info("Starting Profile Builder service")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Max concurrent builds: {settings.max_concurrent_builds}")

    try:
        create_tables()
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    register_refresh_checker(settings.refresh_check_minutes)
    start_scheduler()

    yield

    stop_scheduler()
    logger.info("Shutting down")


app = FastAPI(
    title="Profile Builder",
    description="Multi-source profile ingestion and reconciliation for notable people",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(people.router, prefix="/api/v1")


@app.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": "Profile Builder",
        "version": "0.1.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Service and database connectivity."""
    health_status = {
        "status": "healthy",
        "service": "running",
        "database": "unknown"
    }
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["database"] = f"error: {str(e)}"
        logger.warning(f"Database health check failed: {e}")
    return health_status

#===============================================================================
# PULSEBOARD - MAIN APPLICATION FILE (app.py)
# Multi-tenant marketing analytics dashboard API
#
# This is the core FastAPI application that wires together:
# - Client Authentication & Session Management
# - Dashboard Metrics & Demo Data
# - Google Analytics / Search Console OAuth and Sync
# - Health Endpoint
#===============================================================================

#-- Section 1: Core Imports
import logging
import os

from fastapi import FastAPI

from config.settings import settings
from pulseboard import __version__
from pulseboard.core.database import db_manager
from pulseboard.core.health import get_health_status
from pulseboard.core.safe_logger import init_logging

#-- Section 2: Module Routers
from pulseboard.dashboard.database_manager import dashboard_db
from pulseboard.dashboard.router import router as dashboard_router
from pulseboard.integrations.google import router as google_router

logger = logging.getLogger(__name__)

#-- Section 3: FastAPI App Configuration
app = FastAPI(
    title="Pulseboard",
    description="Multi-tenant dashboard for Google Analytics and Search Console metrics",
    version=__version__
)

app.include_router(dashboard_router)
app.include_router(google_router)

#-- Section 4: Application Lifecycle Events
@app.on_event("startup")
async def startup_event():
    """Validate configuration, then connect the database and create tables."""
    init_logging(level=settings.log_level, structured=settings.log_format == "json")

    # Fails fast with every missing variable named at once
    settings.validate()

    logger.info(f"🚀 Starting Pulseboard ({settings.environment})...")

    await db_manager.connect()
    await dashboard_db.initialize_schema()
    logger.info("✅ Database connected and schema ready")


@app.on_event("shutdown")
async def shutdown_event():
    await db_manager.disconnect()
    logger.info("👋 Pulseboard stopped")

#-- Section 5: Health Endpoint
@app.get("/health")
async def health_check():
    """System health: database, Google OAuth configuration, encryption."""
    return await get_health_status()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
        access_log=True
    )

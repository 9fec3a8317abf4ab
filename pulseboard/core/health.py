# pulseboard/core/health.py
"""
Health check module for Pulseboard.
Database connectivity, Google OAuth configuration and encryption status.
"""

import time
from typing import Any, Dict

from config.settings import settings
from .crypto import get_encryption_info
from .database import db_manager

__all__ = [
    'check_database',
    'check_google_oauth',
    'get_health_status',
]


# =============================================================================
# Section 1: Individual Checks
# =============================================================================

async def check_database() -> Dict[str, Any]:
    """Check database connectivity and response time."""
    start_time = time.time()

    result = await db_manager.health_check()
    result["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
    return result


def check_google_oauth() -> Dict[str, Any]:
    configured, missing = settings.google_oauth_status()
    return {
        "configured": configured,
        "missing": missing
    }


# =============================================================================
# Section 2: System Health Aggregation
# =============================================================================

async def get_health_status() -> Dict[str, Any]:
    """Get complete system health status; only the database decides overall status."""
    start_time = time.time()

    db_status = await check_database()

    overall_status = "healthy" if db_status["status"] == "healthy" else "unhealthy"
    total_time = round((time.time() - start_time) * 1000, 2)

    return {
        "status": overall_status,
        "timestamp": time.time(),
        "total_check_time_ms": total_time,
        "services": {
            "database": db_status,
            "google_oauth": check_google_oauth(),
            "encryption": get_encryption_info()
        }
    }

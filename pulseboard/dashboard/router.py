# pulseboard/dashboard/router.py
"""
Dashboard Router
FastAPI endpoints for client authentication, dashboard metrics and demo data

Endpoints:
- POST /api/auth/login
- POST /api/auth/session
- POST /api/auth/logout
- POST /api/dashboard/metrics
- POST /api/metrics/upsert
- POST /api/demo/seed
"""

import logging

from fastapi import APIRouter, HTTPException

from ..core.auth import auth_manager
from ..core.errors import DashboardError, PermissionDeniedError
from .metrics_service import metrics_service
from .models import (
    DashboardMetricsRequest,
    LoginRequest,
    SessionRequest,
    UpsertMetricRequest,
)

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["dashboard"])


def _http_error(error: DashboardError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


# ==================== AUTHENTICATION ENDPOINTS ====================

@router.post("/auth/login")
async def login(request: LoginRequest):
    """
    Authenticate a client within a tenant and open a 24 hour session
    """
    try:
        return await auth_manager.authenticate_client(
            request.email, request.password, request.tenant_domain
        )
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Login failed")


@router.post("/auth/session")
async def validate_session(request: SessionRequest):
    """
    Client and tenant for a session token, or null when it does not validate
    """
    try:
        return {"session": await auth_manager.validate_session(request.session_token)}
    except Exception as e:
        logger.exception(f"Session validation error: {e}")
        raise HTTPException(status_code=500, detail="Session validation failed")


@router.post("/auth/logout")
async def logout(request: SessionRequest):
    try:
        return await auth_manager.logout_client(request.session_token)
    except Exception as e:
        logger.exception(f"Logout error: {e}")
        raise HTTPException(status_code=500, detail="Logout failed")


# ==================== METRICS ENDPOINTS ====================

@router.post("/dashboard/metrics")
async def get_dashboard_metrics(request: DashboardMetricsRequest):
    """
    Aggregated analytics and search console totals plus chart rows
    """
    try:
        return await metrics_service.get_dashboard_metrics(request.session_token, request.days_back)
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Failed to load dashboard metrics: {e}")
        raise HTTPException(status_code=500, detail="Failed to load dashboard metrics")


@router.post("/metrics/upsert")
async def upsert_metric(request: UpsertMetricRequest):
    """
    Write one day of metrics for the caller's own tenant (admins only)
    """
    try:
        context = await auth_manager.require_session(request.session_token)
        if not context.is_admin:
            raise PermissionDeniedError("Only admins can write metrics")

        return await metrics_service.upsert_metric(
            context.tenant_id, request.date, request.source, request.data
        )
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Failed to upsert metric: {e}")
        raise HTTPException(status_code=500, detail="Failed to upsert metric")


# ==================== DEMO DATA ====================

@router.post("/demo/seed")
async def seed_demo_data():
    """
    Create the demo tenant, its admin login and 30 days of metrics (idempotent)
    """
    try:
        return await metrics_service.seed_demo_data()
    except Exception as e:
        logger.exception(f"Failed to seed demo data: {e}")
        raise HTTPException(status_code=500, detail="Failed to seed demo data")

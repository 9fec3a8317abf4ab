# pulseboard/integrations/google/router.py
"""
Google Integration Router
FastAPI endpoints for the per-tenant Google connection

Endpoints:
- POST /api/google/auth-url        (admin) consent URL for the popup
- POST /api/google/tokens          store a token pair on the session tenant
- POST /api/google/tokens/update   (admin) replace the access token
- POST /api/google/disconnect      (admin) clear tokens
- POST /api/google/fetch           pull GA4 and Search Console data
- GET  /google/callback            OAuth redirect target (HTML page)
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from config.settings import ConfigurationError
from ...core.auth import auth_manager
from ...core.errors import DashboardError
from .data_sync import google_data_sync
from .oauth_manager import google_auth_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["google"])

# ==================== REQUEST MODELS ====================

class GoogleSessionRequest(BaseModel):
    session_token: str

class StoreTokensRequest(BaseModel):
    session_token: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., gt=0)

class UpdateTokensRequest(BaseModel):
    session_token: str
    access_token: str
    expires_in: int = Field(..., gt=0)


def _http_error(error: DashboardError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)

# ==================== AUTHENTICATION ENDPOINTS ====================

@router.post("/api/google/auth-url")
async def generate_auth_url(request: GoogleSessionRequest):
    """
    Consent URL for the admin's tenant; open it in a popup
    """
    try:
        return await google_auth_manager.generate_auth_url(request.session_token)
    except DashboardError as e:
        raise _http_error(e)
    except ConfigurationError as e:
        logger.error(f"Google OAuth not configured: {e.missing_vars}")
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.exception(f"Failed to generate auth URL: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate auth URL")

@router.get("/google/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="State issued with the auth URL"),
    error: Optional[str] = Query(None, description="Error reported by Google")
):
    """
    Handle OAuth redirect from Google

    Always answers with a small HTML page that closes the popup.
    """
    page, status = await google_auth_manager.handle_oauth_callback(code, state, error)
    return HTMLResponse(content=page, status_code=status)

# ==================== TOKEN ENDPOINTS ====================

@router.post("/api/google/tokens")
async def store_google_tokens(request: StoreTokensRequest):
    try:
        return await google_auth_manager.store_google_tokens(
            request.session_token,
            request.access_token,
            request.refresh_token,
            request.expires_in
        )
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Failed to store Google tokens: {e}")
        raise HTTPException(status_code=500, detail="Failed to store Google tokens")

@router.post("/api/google/tokens/update")
async def update_google_tokens(request: UpdateTokensRequest):
    """
    Replace the access token of the admin's own tenant
    """
    try:
        context = await auth_manager.require_admin(request.session_token, "update")
        return await google_auth_manager.update_google_tokens(
            context.tenant_id, request.access_token, request.expires_in
        )
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Failed to update Google tokens: {e}")
        raise HTTPException(status_code=500, detail="Failed to update Google tokens")

@router.post("/api/google/disconnect")
async def disconnect_google(request: GoogleSessionRequest):
    try:
        return await google_auth_manager.disconnect_google(request.session_token)
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Failed to disconnect Google: {e}")
        raise HTTPException(status_code=500, detail="Failed to disconnect Google")

# ==================== DATA ENDPOINTS ====================

@router.post("/api/google/fetch")
async def fetch_google_data(request: GoogleSessionRequest):
    """
    Pull the last 30 days of GA4 and Search Console data for the session tenant
    """
    try:
        return await google_data_sync.fetch_google_data(request.session_token)
    except DashboardError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception(f"Google data fetch failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch Google data")

# pulseboard/integrations/google/__init__.py
"""
Google Integration for Pulseboard
Per-tenant Google Analytics 4 and Search Console connection

This module provides:
- OAuth: web flow in a popup, tokens encrypted on the tenant row
- Analytics: daily GA4 report stored as 'analytics' metrics
- Search Console: daily search analytics stored as 'search_console' metrics
- Sync: one refresh-and-retry when Google rejects the access token
"""

# Module metadata
__version__ = "1.0.0"
__description__ = "Google Analytics and Search Console sync per tenant"

# Module configuration
MODULE_NAME = 'google'
INTEGRATION_TYPE = 'marketing_analytics'

# OAuth scopes requested from the tenant admin
OAUTH_SCOPES = [
    'https://www.googleapis.com/auth/analytics.readonly',
    'https://www.googleapis.com/auth/webmasters.readonly',
]

# OAuth endpoints
GOOGLE_AUTH_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'

SEARCH_CONSOLE_API_BASE = 'https://searchconsole.googleapis.com/webmasters/v3'

# OAuth state tokens are rejected after this many seconds
STATE_TOKEN_MAX_AGE_SECONDS = 600

# Used when Google omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# Days of history pulled on every sync
FETCH_WINDOW_DAYS = 30

SEARCH_CONSOLE_ROW_LIMIT = 1000

HTTP_TIMEOUT_SECONDS = 30

# Import router AFTER all constants are defined
# This prevents circular import errors
from .router import router

# Export public API
__all__ = [
    'router',
    'OAUTH_SCOPES',
    'MODULE_NAME',
]

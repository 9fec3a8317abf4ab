# pulseboard/integrations/google/data_sync.py
"""
Google Data Sync
Pulls the last 30 days from GA4 and Search Console into the metrics table

If Google answers 401 the access token is refreshed once, stored, and the
whole pull is repeated once. Any failure in that second round means the
tenant has to reconnect. Other API errors abort the sync as they are.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from . import FETCH_WINDOW_DAYS
from .analytics_client import analytics_client
from .oauth_manager import google_auth_manager
from .search_console_client import search_console_client
from ...core.auth import auth_manager
from ...core.errors import GoogleApiUnauthorizedError, GoogleNotConnectedError, GoogleTokenExpiredError
from ...core.safe_logger import log_summary
from ...dashboard.metrics_service import metrics_service

logger = logging.getLogger(__name__)

__all__ = [
    'GoogleDataSync',
    'google_data_sync',
]


class GoogleDataSync:
    """Fetch-and-store of a tenant's Google data"""

    def __init__(self, auth=None, oauth=None, metrics=None, analytics=None,
                 search_console=None, clock: Callable[[], datetime] = None):
        self.auth = auth or auth_manager
        self.oauth = oauth or google_auth_manager
        self.metrics = metrics or metrics_service
        self.analytics = analytics or analytics_client
        self.search_console = search_console or search_console_client
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def fetch_google_data(self, session_token: str) -> Dict[str, Any]:
        """
        Sync the session tenant's Google data

        Returns:
            {'success': True, 'analytics_rows': n, 'search_console_rows': m}
        """
        context = await self.auth.require_session(session_token)
        tenant = await self.oauth.get_tenant_tokens(context.tenant_id)

        if not tenant.get('access_token'):
            raise GoogleNotConnectedError()

        try:
            counts = await self._sync(tenant, tenant['access_token'])
        except GoogleApiUnauthorizedError:
            logger.info(f"Google rejected the access token for tenant {tenant.get('domain')}, refreshing")
            try:
                access_token, expires_in = await self.oauth.refresh_access_token(tenant.get('refresh_token'))
                await self.oauth.update_google_tokens(context.tenant_id, access_token, expires_in)
                counts = await self._sync(tenant, access_token)
            except Exception as e:
                logger.error(f"Google sync retry failed for tenant {tenant.get('domain')}: {e}")
                raise GoogleTokenExpiredError() from e

        log_summary(
            f"Google sync {tenant.get('domain')}",
            counts,
            logger_name=__name__
        )
        return {'success': True, **counts}

    async def _sync(self, tenant: Dict[str, Any], access_token: str) -> Dict[str, int]:
        tenant_id = str(tenant['id'])
        end_date = self.clock().date()
        start_date = end_date - timedelta(days=FETCH_WINDOW_DAYS)

        analytics_rows = 0
        if tenant.get('google_analytics_property_id'):
            rows = await self.analytics.fetch_daily_metrics(
                access_token, tenant['google_analytics_property_id'], start_date, end_date
            )
            for row in rows:
                await self.metrics.upsert_metric(tenant_id, row['date'], 'analytics', row['data'])
            analytics_rows = len(rows)

        search_console_rows = 0
        if tenant.get('search_console_url'):
            rows = await self.search_console.fetch_daily_metrics(
                access_token, tenant['search_console_url'], start_date, end_date
            )
            for row in rows:
                await self.metrics.upsert_metric(tenant_id, row['date'], 'search_console', row['data'])
            search_console_rows = len(rows)

        return {'analytics_rows': analytics_rows, 'search_console_rows': search_console_rows}


# Global instance
google_data_sync = GoogleDataSync()

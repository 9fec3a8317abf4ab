# pulseboard/integrations/google/analytics_client.py
"""
Google Analytics Client - Using Official Google Analytics Data API
Daily GA4 traffic report mapped to 'analytics' metric rows
"""

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Metric,
    RunReportRequest,
)
from google.api_core.exceptions import GoogleAPICallError, Unauthenticated
from google.oauth2.credentials import Credentials

from ...core.errors import GoogleApiError, GoogleApiUnauthorizedError

logger = logging.getLogger(__name__)

__all__ = [
    'AnalyticsClient',
    'analytics_client',
    'format_ga_date',
    'parse_report_rows',
]

# Report metric name -> stored metric key, in report order
REPORT_METRICS = (
    ('sessions', 'sessions', int),
    ('totalUsers', 'users', int),
    ('screenPageViews', 'pageviews', int),
    ('bounceRate', 'bounce_rate', float),
    ('averageSessionDuration', 'avg_session_duration', float),
)


def format_ga_date(value: str) -> str:
    """GA4 reports dates as YYYYMMDD; stored dates are YYYY-MM-DD"""
    if value and len(value) == 8:
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value


def _number(raw: str, cast):
    value = float(raw or 0)
    return int(value) if cast is int else value


def parse_report_rows(response) -> List[Dict[str, Any]]:
    """RunReportResponse -> [{'date': 'YYYY-MM-DD', 'data': {...}}]"""
    rows = []
    for row in response.rows:
        if not row.dimension_values or not row.dimension_values[0].value:
            continue

        values = [metric_value.value for metric_value in row.metric_values]
        data = {}
        for index, (_, key, cast) in enumerate(REPORT_METRICS):
            data[key] = _number(values[index] if index < len(values) else "0", cast)

        rows.append({
            'date': format_ga_date(row.dimension_values[0].value),
            'data': data,
        })
    return rows


class AnalyticsClient:
    """GA4 Data API client; the access token is supplied per call"""

    def __init__(self, client_factory: Callable[[Credentials], Any] = None):
        self.client_factory = client_factory or (lambda creds: BetaAnalyticsDataClient(credentials=creds))

    def _run_report(self, access_token: str, request: RunReportRequest):
        # Token-only credentials: the library must not refresh on its own
        credentials = Credentials(token=access_token)
        client = self.client_factory(credentials)
        return client.run_report(request)

    async def fetch_daily_metrics(self, access_token: str, property_id: str,
                                  start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """
        One row per day between start_date and end_date

        Raises:
            GoogleApiUnauthorizedError: Google rejected the access token
            GoogleApiError: any other API failure
        """
        request = RunReportRequest(
            property=f'properties/{property_id}',
            date_ranges=[DateRange(
                start_date=start_date.strftime('%Y-%m-%d'),
                end_date=end_date.strftime('%Y-%m-%d')
            )],
            dimensions=[Dimension(name='date')],
            metrics=[Metric(name=name) for name, _, _ in REPORT_METRICS]
        )

        try:
            # The GA4 client is synchronous
            response = await asyncio.to_thread(self._run_report, access_token, request)
        except Unauthenticated as e:
            logger.warning(f"GA4 rejected the access token for property {property_id}")
            raise GoogleApiUnauthorizedError(f"Google Analytics authentication failed: {e.message}")
        except GoogleAPICallError as e:
            logger.error(f"GA4 report failed for property {property_id}: {e}")
            raise GoogleApiError(f"Google Analytics API error: {e.message}")

        rows = parse_report_rows(response)
        logger.info(f"GA4 report for property {property_id}: {len(rows)} days")
        return rows


# Global instance
analytics_client = AnalyticsClient()

# pulseboard/integrations/google/search_console_client.py
"""
Google Search Console Client
Daily search analytics via the REST API (aiohttp) mapped to 'search_console' rows

Search Console reports CTR as a fraction; stored rows carry it as a
percentage (ctr * 100).
"""

import logging
from datetime import date
from typing import Any, Dict, List, Tuple
from urllib.parse import quote

import aiohttp

from . import HTTP_TIMEOUT_SECONDS, SEARCH_CONSOLE_API_BASE, SEARCH_CONSOLE_ROW_LIMIT
from ...core.errors import GoogleApiError, GoogleApiUnauthorizedError

logger = logging.getLogger(__name__)

__all__ = [
    'SearchConsoleClient',
    'search_console_client',
    'parse_search_rows',
]


def parse_search_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """API rows -> [{'date': 'YYYY-MM-DD', 'data': {...}}]"""
    parsed = []
    for row in rows:
        keys = row.get('keys') or []
        if not keys or not keys[0]:
            continue

        parsed.append({
            'date': keys[0],
            'data': {
                'clicks': int(row.get('clicks') or 0),
                'impressions': int(row.get('impressions') or 0),
                'ctr': (row.get('ctr') or 0) * 100,
                'position': row.get('position') or 0,
            },
        })
    return parsed


class SearchConsoleClient:
    """Search Console searchAnalytics/query client; the access token is supplied per call"""

    def __init__(self, api_base: str = SEARCH_CONSOLE_API_BASE):
        self.api_base = api_base

    def query_url(self, site_url: str) -> str:
        return f"{self.api_base}/sites/{quote(site_url, safe='')}/searchAnalytics/query"

    async def _post_query(self, url: str, access_token: str, body: Dict[str, Any]) -> Tuple[int, Any]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, headers=headers, json=body) as response:
                if response.status != 200:
                    return response.status, await response.text()
                return response.status, await response.json()

    async def fetch_daily_metrics(self, access_token: str, site_url: str,
                                  start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """
        One row per day with search data between start_date and end_date

        Raises:
            GoogleApiUnauthorizedError: Google rejected the access token (401)
            GoogleApiError: any other API failure
        """
        request_body = {
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            "dimensions": ["date"],
            "rowLimit": SEARCH_CONSOLE_ROW_LIMIT
        }

        try:
            status, body = await self._post_query(self.query_url(site_url), access_token, request_body)
        except aiohttp.ClientError as e:
            logger.error(f"Search Console request failed for {site_url}: {e}")
            raise GoogleApiError(f"Search Console request failed: {e}")

        if status == 401:
            logger.warning(f"Search Console rejected the access token for {site_url}")
            raise GoogleApiUnauthorizedError("Search Console authentication failed")

        if status == 403:
            logger.error(f"Search Console permission denied for {site_url}: {str(body)[:200]}")
            raise GoogleApiError(f"Permission denied for site: {site_url}")

        if status != 200:
            logger.error(f"Search Console API error {status}: {str(body)[:500]}")
            raise GoogleApiError(f"Search Console API error {status}: {str(body)[:200]}")

        rows = parse_search_rows(body.get('rows', []))
        logger.info(f"Search Console report for {site_url}: {len(rows)} days")
        return rows


# Global instance
search_console_client = SearchConsoleClient()

# pulseboard/dashboard/metrics_service.py
"""
Metrics Service
Per-day metric storage, dashboard aggregation and demo data seeding

Aggregation rules (per source, over every row dated on or after
today - days_back):
- analytics: sessions, users, pageviews summed; bounce_rate averaged
- search_console: clicks, impressions summed; ctr, position averaged
Averages divide by the number of rows of that source (a missing value
counts as 0) and are rounded half-up to two decimals.
"""

import logging
import math
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import asyncpg
from pydantic import ValidationError

from . import DEMO_CLIENT, DEMO_DAYS, DEMO_TENANT
from .database_manager import dashboard_db
from .models import METRIC_SOURCES, MetricData
from ..core.auth import auth_manager, hash_password
from ..core.errors import MetricValidationError

logger = logging.getLogger(__name__)

__all__ = [
    'MetricsService',
    'metrics_service',
    'aggregate_metrics',
    'round_half_up',
    'build_demo_metrics',
]

DEFAULT_DAYS_BACK = 30

SUMMED_ANALYTICS = ('sessions', 'users', 'pageviews')
AVERAGED_ANALYTICS = ('bounce_rate',)
SUMMED_SEARCH = ('clicks', 'impressions')
AVERAGED_SEARCH = ('ctr', 'position')


def round_half_up(value: float, places: int = 2) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def _parse_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise MetricValidationError(f"Invalid metric date: {value!r} (expected YYYY-MM-DD)")


def _reduce(rows: List[Dict[str, Any]], summed, averaged) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for field in summed:
        result[field] = sum(row['data'].get(field) or 0 for row in rows)
    for field in averaged:
        if rows:
            total = sum(row['data'].get(field) or 0 for row in rows)
            result[field] = round_half_up(total / len(rows))
        else:
            result[field] = 0
    return result


def aggregate_metrics(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reduce metric rows to dashboard totals plus chart data.

    Each row needs 'date', 'source' and 'data' keys.
    """
    rows = list(rows)
    analytics = [row for row in rows if row['source'] == 'analytics']
    search_console = [row for row in rows if row['source'] == 'search_console']

    chart_data = []
    for row in rows:
        row_date = row['date']
        chart_data.append({
            'date': row_date.isoformat() if isinstance(row_date, date) else row_date,
            'source': row['source'],
            **row['data'],
        })

    return {
        'analytics': _reduce(analytics, SUMMED_ANALYTICS, AVERAGED_ANALYTICS),
        'search_console': _reduce(search_console, SUMMED_SEARCH, AVERAGED_SEARCH),
        'chart_data': chart_data,
    }


def build_demo_metrics(today: date, rng: random.Random, now: datetime,
                       days: int = DEMO_DAYS) -> List[Dict[str, Any]]:
    """Random but plausible metric rows for today and the days before it"""
    rows = []
    for offset in range(days):
        metric_date = today - timedelta(days=offset)
        rows.append({
            'date': metric_date,
            'source': 'analytics',
            'data': {
                'sessions': rng.randint(500, 1499),
                'users': rng.randint(400, 1199),
                'pageviews': rng.randint(1000, 2999),
                'bounce_rate': rng.random() * 0.3 + 0.4,
                'avg_session_duration': rng.randint(120, 419),
            },
            'updated_at': now,
        })
        rows.append({
            'date': metric_date,
            'source': 'search_console',
            'data': {
                'clicks': rng.randint(50, 249),
                'impressions': rng.randint(2000, 6999),
                'ctr': rng.random() * 0.05 + 0.02,
                'position': rng.random() * 20 + 10,
            },
            'updated_at': now,
        })
    return rows


def _already_seeded(tenant: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'success': True,
        'message': 'Demo data already exists',
        'tenant_id': str(tenant['id']),
    }


class MetricsService:
    """Metric writes, dashboard reads and demo seeding for one database"""

    def __init__(self, db=None, auth=None, clock: Callable[[], datetime] = None):
        self.db = db or dashboard_db
        self.auth = auth or auth_manager
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def upsert_metric(self, tenant_id: str, metric_date: Union[str, date], source: str,
                            data: Union[Dict[str, Any], MetricData]) -> Dict[str, Any]:
        """Insert or replace the (tenant, date, source) row"""
        if source not in METRIC_SOURCES:
            raise MetricValidationError(f"Invalid metric source: {source!r}")

        if not isinstance(data, MetricData):
            try:
                data = MetricData.model_validate(data)
            except ValidationError as e:
                raise MetricValidationError(f"Invalid metric data: {e.errors()[0]['msg']}")

        await self.db.upsert_metric(
            str(tenant_id),
            _parse_date(metric_date),
            source,
            data.to_bag(),
            self.clock()
        )
        return {'success': True}

    async def get_dashboard_metrics(self, session_token: str,
                                    days_back: Optional[int] = None) -> Dict[str, Any]:
        context = await self.auth.require_session(session_token)
        tenant = context.tenant

        days_back = days_back or DEFAULT_DAYS_BACK
        if days_back < 1:
            raise MetricValidationError("days_back must be at least 1")

        start_date = self.clock().date() - timedelta(days=days_back)
        rows = await self.db.get_metrics_since(context.tenant_id, start_date)

        result = aggregate_metrics(rows)
        result.update({
            'is_google_connected': bool(tenant.get('is_google_connected')),
            'google_analytics_property_id': tenant.get('google_analytics_property_id'),
            'search_console_url': tenant.get('search_console_url'),
        })
        return result

    async def seed_demo_data(self, rng: Optional[random.Random] = None) -> Dict[str, Any]:
        """Create the demo tenant, admin client and 30 days of metrics once"""
        existing = await self.db.get_tenant_by_domain(DEMO_TENANT['domain'])
        if existing:
            return _already_seeded(existing)

        now = self.clock()
        metrics = build_demo_metrics(now.date(), rng or random.Random(), now)
        client = {
            'email': DEMO_CLIENT['email'],
            'name': DEMO_CLIENT['name'],
            'role': DEMO_CLIENT['role'],
            'hashed_password': hash_password(DEMO_CLIENT['password']),
        }

        try:
            tenant_id = await self.db.create_demo_tenant(dict(DEMO_TENANT), client, metrics)
        except asyncpg.UniqueViolationError:
            # A concurrent seed inserted the demo tenant first
            existing = await self.db.get_tenant_by_domain(DEMO_TENANT['domain'])
            if not existing:
                raise
            return _already_seeded(existing)

        logger.info(f"Demo tenant {DEMO_TENANT['domain']} seeded with {len(metrics)} metric rows")
        return {'success': True, 'tenant_id': tenant_id}


# Global instance
metrics_service = MetricsService()

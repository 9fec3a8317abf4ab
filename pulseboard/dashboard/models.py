# pulseboard/dashboard/models.py
"""
Request and record models for the dashboard API.
"""

import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MetricSource = Literal['analytics', 'search_console']

METRIC_SOURCES = ('analytics', 'search_console')


class MetricData(BaseModel):
    """Optional-field bag of daily measurements"""
    model_config = ConfigDict(extra='forbid')

    # analytics
    sessions: Optional[int] = None
    users: Optional[int] = None
    pageviews: Optional[int] = None
    bounce_rate: Optional[float] = None
    avg_session_duration: Optional[float] = None
    # search_console
    clicks: Optional[int] = None
    impressions: Optional[int] = None
    ctr: Optional[float] = None
    position: Optional[float] = None

    def to_bag(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ==================== REQUEST MODELS ====================

class SessionRequest(BaseModel):
    session_token: str


class LoginRequest(BaseModel):
    email: str
    password: str
    tenant_domain: str


class DashboardMetricsRequest(SessionRequest):
    days_back: int = Field(30, ge=1, le=365)


class UpsertMetricRequest(SessionRequest):
    date: datetime.date
    source: MetricSource
    data: MetricData

import asyncio
from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import PermissionDenied, Unauthenticated

from pulseboard.core.crypto import decrypt_token
from pulseboard.core.errors import (
    GoogleApiError,
    GoogleApiUnauthorizedError,
    GoogleNotConnectedError,
    GoogleTokenExpiredError,
)
from pulseboard.integrations.google.analytics_client import AnalyticsClient, format_ga_date, parse_report_rows
from pulseboard.integrations.google.data_sync import GoogleDataSync
from pulseboard.integrations.google.search_console_client import SearchConsoleClient, parse_search_rows
from tests.fakes import PASSWORD


class ScriptedReportClient:
    """Returns (or raises) the scripted outcomes in order, recording the tokens used"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.tokens = []

    async def fetch_daily_metrics(self, access_token, target, start_date, end_date):
        self.tokens.append(access_token)
        outcome = self.outcomes.pop(0) if self.outcomes else []
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


ANALYTICS_ROWS = [
    {'date': '2024-06-14', 'data': {'sessions': 120, 'users': 90, 'pageviews': 300,
                                    'bounce_rate': 0.42, 'avg_session_duration': 153.2}},
    {'date': '2024-06-15', 'data': {'sessions': 80, 'users': 70, 'pageviews': 200,
                                    'bounce_rate': 0.5, 'avg_session_duration': 99.0}},
]

SEARCH_ROWS = [
    {'date': '2024-06-15', 'data': {'clicks': 12, 'impressions': 800, 'ctr': 1.5, 'position': 8.2}},
]


@pytest.fixture
def session_token(auth, admin):
    return asyncio.run(auth.authenticate_client("admin@acme.example.com", PASSWORD, "acme.example.com"))['session_token']


@pytest.fixture
def connected(google_auth, session_token):
    asyncio.run(google_auth.store_google_tokens(session_token, "ya29.old", "1//refresh", 3600))
    return session_token


@pytest.fixture
def refreshes(google_auth):
    calls = []

    async def refresh(refresh_token):
        calls.append(refresh_token)
        return "ya29.new", 3599

    google_auth.refresh_access_token = refresh
    return calls


def make_sync(auth, google_auth, metrics, clock, analytics, search_console):
    return GoogleDataSync(
        auth=auth, oauth=google_auth, metrics=metrics,
        analytics=analytics, search_console=search_console, clock=clock
    )


# ==================== SYNC ====================

def test_sync_stores_both_sources(auth, google_auth, metrics, clock, db, tenant, connected):
    analytics = ScriptedReportClient(ANALYTICS_ROWS)
    search = ScriptedReportClient(SEARCH_ROWS)

    result = asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, search).fetch_google_data(connected))

    assert result == {'success': True, 'analytics_rows': 2, 'search_console_rows': 1}
    assert analytics.tokens == search.tokens == ["ya29.old"]
    stored = db.metric_rows(tenant['id'], 'analytics')
    assert [row['date'] for row in stored] == [date(2024, 6, 14), date(2024, 6, 15)]
    assert stored[0]['data']['sessions'] == 120
    assert db.metric_rows(tenant['id'], 'search_console')[0]['data']['ctr'] == 1.5


def test_sync_requires_connection(auth, google_auth, metrics, clock, session_token):
    sync = make_sync(auth, google_auth, metrics, clock, ScriptedReportClient(), ScriptedReportClient())

    with pytest.raises(GoogleNotConnectedError) as excinfo:
        asyncio.run(sync.fetch_google_data(session_token))

    assert excinfo.value.message == "Google not connected for this tenant"


def test_sync_skips_unconfigured_sources(auth, google_auth, metrics, clock, db, tenant, connected):
    db.tenants[tenant['id']]['google_analytics_property_id'] = None
    analytics = ScriptedReportClient(ANALYTICS_ROWS)
    search = ScriptedReportClient(SEARCH_ROWS)

    result = asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, search).fetch_google_data(connected))

    assert result['analytics_rows'] == 0
    assert analytics.tokens == []
    assert search.tokens == ["ya29.old"]


def test_unauthorized_refreshes_once_and_retries(auth, google_auth, metrics, clock, tenant, connected, refreshes):
    analytics = ScriptedReportClient(GoogleApiUnauthorizedError(), ANALYTICS_ROWS)
    search = ScriptedReportClient(SEARCH_ROWS)

    result = asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, search).fetch_google_data(connected))

    assert result['success'] is True
    assert refreshes == ["1//refresh"]
    assert analytics.tokens == ["ya29.old", "ya29.new"]
    assert search.tokens == ["ya29.new"]

    tokens = asyncio.run(google_auth.get_tenant_tokens(tenant['id']))
    assert tokens['access_token'] == "ya29.new"
    assert tokens['google_token_expires_at'] == clock() + timedelta(seconds=3599)


def test_second_unauthorized_means_reconnect(auth, google_auth, metrics, clock, connected, refreshes):
    analytics = ScriptedReportClient(GoogleApiUnauthorizedError(), GoogleApiUnauthorizedError())
    search = ScriptedReportClient(SEARCH_ROWS)

    with pytest.raises(GoogleTokenExpiredError) as excinfo:
        asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, search).fetch_google_data(connected))

    assert excinfo.value.message == "Google authentication expired. Please reconnect."
    assert refreshes == ["1//refresh"]


def test_failed_refresh_means_reconnect(auth, google_auth, metrics, clock, connected):
    async def refresh(refresh_token):
        raise GoogleTokenExpiredError()

    google_auth.refresh_access_token = refresh
    analytics = ScriptedReportClient(GoogleApiUnauthorizedError())

    with pytest.raises(GoogleTokenExpiredError):
        asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, ScriptedReportClient()).fetch_google_data(connected))


def test_other_api_errors_propagate_without_refresh(auth, google_auth, metrics, clock, connected, refreshes):
    analytics = ScriptedReportClient(ANALYTICS_ROWS)
    search = ScriptedReportClient(GoogleApiError("Search Console API error 500: boom"))

    with pytest.raises(GoogleApiError) as excinfo:
        asyncio.run(make_sync(auth, google_auth, metrics, clock, analytics, search).fetch_google_data(connected))

    assert not isinstance(excinfo.value, GoogleApiUnauthorizedError)
    assert refreshes == []


# ==================== ANALYTICS CLIENT ====================

def ga_row(day, *values):
    return SimpleNamespace(
        dimension_values=[SimpleNamespace(value=day)],
        metric_values=[SimpleNamespace(value=v) for v in values],
    )


def test_format_ga_date():
    assert format_ga_date("20240115") == "2024-01-15"
    assert format_ga_date("2024-01-15") == "2024-01-15"


def test_parse_report_rows():
    response = SimpleNamespace(rows=[
        ga_row("20240614", "120", "90", "300", "0.42", "153.2"),
        ga_row("20240615", "80", "70"),
    ])

    rows = parse_report_rows(response)

    assert rows[0] == {'date': '2024-06-14', 'data': {
        'sessions': 120, 'users': 90, 'pageviews': 300, 'bounce_rate': 0.42, 'avg_session_duration': 153.2
    }}
    assert rows[1]['data']['pageviews'] == 0
    assert rows[1]['data']['bounce_rate'] == 0.0


class FakeDataClient:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []
        self.credentials = None

    def __call__(self, credentials):
        self.credentials = credentials
        return self

    def run_report(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response


def test_analytics_client_builds_daily_report():
    fake = FakeDataClient(response=SimpleNamespace(rows=[ga_row("20240615", "1", "1", "1", "0.5", "10")]))
    client = AnalyticsClient(client_factory=fake)

    rows = asyncio.run(client.fetch_daily_metrics("ya29.token", "123456789", date(2024, 5, 16), date(2024, 6, 15)))

    assert rows[0]['date'] == "2024-06-15"
    assert fake.credentials.token == "ya29.token"
    request = fake.requests[0]
    assert request.property == "properties/123456789"
    assert request.date_ranges[0].start_date == "2024-05-16"
    assert request.date_ranges[0].end_date == "2024-06-15"
    assert [d.name for d in request.dimensions] == ["date"]
    assert [m.name for m in request.metrics] == [
        "sessions", "totalUsers", "screenPageViews", "bounceRate", "averageSessionDuration"
    ]


def test_analytics_client_maps_errors():
    client = AnalyticsClient(client_factory=FakeDataClient(error=Unauthenticated("token expired")))
    with pytest.raises(GoogleApiUnauthorizedError):
        asyncio.run(client.fetch_daily_metrics("ya29.token", "1", date(2024, 5, 16), date(2024, 6, 15)))

    client = AnalyticsClient(client_factory=FakeDataClient(error=PermissionDenied("no access")))
    with pytest.raises(GoogleApiError) as excinfo:
        asyncio.run(client.fetch_daily_metrics("ya29.token", "1", date(2024, 5, 16), date(2024, 6, 15)))
    assert not isinstance(excinfo.value, GoogleApiUnauthorizedError)


# ==================== SEARCH CONSOLE CLIENT ====================

def test_parse_search_rows_converts_ctr_to_percent():
    rows = parse_search_rows([
        {'keys': ['2024-06-15'], 'clicks': 12, 'impressions': 800, 'ctr': 0.015, 'position': 8.2},
        {'keys': [], 'clicks': 1},
    ])

    assert rows == [{'date': '2024-06-15', 'data': {
        'clicks': 12, 'impressions': 800, 'ctr': pytest.approx(1.5), 'position': 8.2
    }}]


def stub_search_api(client, status, body):
    calls = []

    async def post(url, access_token, request_body):
        calls.append((url, access_token, request_body))
        return status, body

    client._post_query = post
    return calls


def test_search_console_query():
    client = SearchConsoleClient()
    calls = stub_search_api(client, 200, {'rows': [
        {'keys': ['2024-06-15'], 'clicks': 3, 'impressions': 90, 'ctr': 0.0333, 'position': 4.0}
    ]})

    rows = asyncio.run(client.fetch_daily_metrics("ya29.token", "https://acme.example.com/",
                                                  date(2024, 5, 16), date(2024, 6, 15)))

    assert rows[0]['data']['clicks'] == 3
    url, token, body = calls[0]
    assert url.endswith("/sites/https%3A%2F%2Facme.example.com%2F/searchAnalytics/query")
    assert token == "ya29.token"
    assert body == {"startDate": "2024-05-16", "endDate": "2024-06-15", "dimensions": ["date"], "rowLimit": 1000}


def test_search_console_no_rows():
    client = SearchConsoleClient()
    stub_search_api(client, 200, {})

    assert asyncio.run(client.fetch_daily_metrics("t", "sc-domain:acme.example.com",
                                                  date(2024, 5, 16), date(2024, 6, 15))) == []


@pytest.mark.parametrize("status, error", [
    (401, GoogleApiUnauthorizedError),
    (403, GoogleApiError),
    (500, GoogleApiError),
])
def test_search_console_errors(status, error):
    client = SearchConsoleClient()
    stub_search_api(client, status, "error body")

    with pytest.raises(error) as excinfo:
        asyncio.run(client.fetch_daily_metrics("t", "https://acme.example.com", date(2024, 5, 16), date(2024, 6, 15)))

    assert (status == 401) == isinstance(excinfo.value, GoogleApiUnauthorizedError)

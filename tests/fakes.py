"""
In-memory stand-in for DashboardDatabase.

Same method names, arguments and return shapes as
pulseboard.dashboard.database_manager.DashboardDatabase, backed by dicts.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

PASSWORD = "correct horse"


class InMemoryDashboardDatabase:

    def __init__(self):
        self.tenants: Dict[str, Dict[str, Any]] = {}
        self.clients: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.metrics: Dict[tuple, Dict[str, Any]] = {}

    # ==================== TEST HELPERS ====================

    def add_tenant(self, name: str, domain: str, is_active: bool = True,
                   google_analytics_property_id: Optional[str] = None,
                   search_console_url: Optional[str] = None) -> Dict[str, Any]:
        tenant_id = str(uuid.uuid4())
        self.tenants[tenant_id] = {
            'id': tenant_id,
            'name': name,
            'domain': domain,
            'is_active': is_active,
            'google_analytics_property_id': google_analytics_property_id,
            'search_console_url': search_console_url,
            'google_access_token': None,
            'google_refresh_token': None,
            'google_token_expires_at': None,
            'is_google_connected': False,
            'created_at': datetime(2024, 1, 1),
        }
        return self.tenants[tenant_id]

    def add_client(self, tenant_id: str, email: str, hashed_password: str, name: str = 'Test User',
                   role: str = 'admin', is_active: bool = True) -> Dict[str, Any]:
        client_id = str(uuid.uuid4())
        self.clients[client_id] = {
            'id': client_id,
            'tenant_id': str(tenant_id),
            'email': email,
            'name': name,
            'hashed_password': hashed_password,
            'role': role,
            'is_active': is_active,
            'last_login_at': None,
        }
        return self.clients[client_id]

    def metric_rows(self, tenant_id: str, source: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            row for (row_tenant, _, row_source), row in sorted(self.metrics.items())
            if row_tenant == str(tenant_id) and (source is None or row_source == source)
        ]

    # ==================== SCHEMA ====================

    async def initialize_schema(self) -> None:
        return None

    # ==================== TENANTS ====================

    async def get_tenant(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        tenant = self.tenants.get(str(tenant_id))
        return dict(tenant) if tenant else None

    async def get_tenant_by_domain(self, domain: str) -> Optional[Dict[str, Any]]:
        for tenant in self.tenants.values():
            if tenant['domain'] == domain:
                return dict(tenant)
        return None

    async def set_google_tokens(self, tenant_id: str, access_token: str,
                                refresh_token: Optional[str], expires_at: datetime) -> None:
        tenant = self.tenants[str(tenant_id)]
        tenant['google_access_token'] = access_token
        if refresh_token is not None:
            tenant['google_refresh_token'] = refresh_token
        tenant['google_token_expires_at'] = expires_at
        tenant['is_google_connected'] = True

    async def update_google_access_token(self, tenant_id: str, access_token: str,
                                         expires_at: datetime) -> None:
        tenant = self.tenants[str(tenant_id)]
        tenant['google_access_token'] = access_token
        tenant['google_token_expires_at'] = expires_at

    async def clear_google_tokens(self, tenant_id: str) -> None:
        tenant = self.tenants[str(tenant_id)]
        tenant['google_access_token'] = None
        tenant['google_refresh_token'] = None
        tenant['google_token_expires_at'] = None
        tenant['is_google_connected'] = False

    # ==================== CLIENTS ====================

    async def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        client = self.clients.get(str(client_id))
        return dict(client) if client else None

    async def get_client_by_email(self, tenant_id: str, email: str) -> Optional[Dict[str, Any]]:
        for client in self.clients.values():
            if client['tenant_id'] == str(tenant_id) and client['email'] == email:
                return dict(client)
        return None

    async def touch_last_login(self, client_id: str, at: datetime) -> None:
        self.clients[str(client_id)]['last_login_at'] = at

    # ==================== SESSIONS ====================

    async def create_session(self, client_id: str, tenant_id: str, session_token: str,
                             created_at: datetime, expires_at: datetime) -> Dict[str, Any]:
        if session_token in self.sessions:
            raise ValueError("duplicate session token")
        self.sessions[session_token] = {
            'id': str(uuid.uuid4()),
            'client_id': str(client_id),
            'tenant_id': str(tenant_id),
            'session_token': session_token,
            'created_at': created_at,
            'expires_at': expires_at,
        }
        return dict(self.sessions[session_token])

    async def get_session_by_token(self, session_token: str) -> Optional[Dict[str, Any]]:
        session = self.sessions.get(session_token)
        return dict(session) if session else None

    async def delete_session(self, session_token: str) -> bool:
        return self.sessions.pop(session_token, None) is not None

    # ==================== METRICS ====================

    async def upsert_metric(self, tenant_id: str, metric_date: date, source: str,
                            data: Dict[str, Any], updated_at: datetime) -> None:
        self.metrics[(str(tenant_id), metric_date, source)] = {
            'tenant_id': str(tenant_id),
            'date': metric_date,
            'source': source,
            'data': dict(data),
            'updated_at': updated_at,
        }

    async def get_metrics_since(self, tenant_id: str, start_date: date) -> List[Dict[str, Any]]:
        return [
            dict(row) for row in self.metric_rows(tenant_id)
            if row['date'] >= start_date
        ]

    # ==================== DEMO DATA ====================

    async def create_demo_tenant(self, tenant: Dict[str, Any], client: Dict[str, Any],
                                 metrics: Iterable[Dict[str, Any]]) -> str:
        row = self.add_tenant(
            tenant['name'],
            tenant['domain'],
            google_analytics_property_id=tenant.get('google_analytics_property_id'),
            search_console_url=tenant.get('search_console_url'),
        )
        self.add_client(row['id'], client['email'], client['hashed_password'],
                        name=client['name'], role=client['role'])
        for metric in metrics:
            key = (row['id'], metric['date'], metric['source'])
            self.metrics.setdefault(key, {
                'tenant_id': row['id'],
                'date': metric['date'],
                'source': metric['source'],
                'data': dict(metric['data']),
                'updated_at': metric['updated_at'],
            })
        return row['id']

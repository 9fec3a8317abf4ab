# pulseboard/dashboard/database_manager.py
"""
Dashboard Database Manager
Centralized database operations for tenants, clients, sessions and metrics

Database Tables:
- tenants (organization boundary, Google connection state)
- clients (dashboard logins, one tenant each)
- dashboard_sessions (opaque bearer tokens with absolute expiry)
- metrics (one row per tenant/date/source, JSONB measurement bag)

Rows are returned as plain dicts. Google tokens are stored exactly as given
(callers encrypt them first); this layer never sees plaintext tokens.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from ..core.database import DatabaseManager, db_manager

logger = logging.getLogger(__name__)

__all__ = [
    'SCHEMA_SQL',
    'DashboardDatabase',
    'dashboard_db',
]

# gen_random_uuid() is built in from PostgreSQL 13
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tenants (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) NOT NULL,
    domain VARCHAR(255) NOT NULL UNIQUE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    google_analytics_property_id VARCHAR(64),
    search_console_url TEXT,
    google_access_token TEXT,
    google_refresh_token TEXT,
    google_token_expires_at TIMESTAMP WITH TIME ZONE,
    is_google_connected BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS clients (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    tenant_id UUID NOT NULL REFERENCES tenants(id),
    email VARCHAR(255) NOT NULL,
    name VARCHAR(255) NOT NULL,
    hashed_password TEXT NOT NULL,
    role VARCHAR(16) NOT NULL CHECK (role IN ('admin', 'viewer')),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    last_login_at TIMESTAMP WITH TIME ZONE,
    UNIQUE (tenant_id, email)
);

CREATE TABLE IF NOT EXISTS dashboard_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    client_id UUID NOT NULL REFERENCES clients(id),
    tenant_id UUID NOT NULL REFERENCES tenants(id),
    session_token VARCHAR(64) NOT NULL UNIQUE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
    expires_at TIMESTAMP WITH TIME ZONE NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_dashboard_sessions_client ON dashboard_sessions(client_id);

CREATE TABLE IF NOT EXISTS metrics (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    tenant_id UUID NOT NULL REFERENCES tenants(id),
    date DATE NOT NULL,
    source VARCHAR(32) NOT NULL CHECK (source IN ('analytics', 'search_console')),
    data JSONB NOT NULL DEFAULT '{}',
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL,
    UNIQUE (tenant_id, date, source)
);

CREATE INDEX IF NOT EXISTS idx_metrics_tenant_date ON metrics(tenant_id, date);
"""

TENANT_COLUMNS = """
    id, name, domain, is_active, google_analytics_property_id, search_console_url,
    google_access_token, google_refresh_token, google_token_expires_at,
    is_google_connected, created_at
"""

CLIENT_COLUMNS = "id, tenant_id, email, name, hashed_password, role, is_active, last_login_at"


def _as_dict(row) -> Optional[Dict[str, Any]]:
    return dict(row) if row else None


class DashboardDatabase:
    """
    Data access for the dashboard tables.

    Every method is a single statement except create_demo_tenant, which
    writes a tenant, its admin client and its metrics in one transaction.
    """

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    async def initialize_schema(self) -> None:
        await self.db.execute(SCHEMA_SQL)
        logger.info("Dashboard schema initialized")

    # ==================== TENANTS ====================

    async def get_tenant(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        row = await self.db.fetch_one(
            f"SELECT {TENANT_COLUMNS} FROM tenants WHERE id = $1", tenant_id
        )
        return _as_dict(row)

    async def get_tenant_by_domain(self, domain: str) -> Optional[Dict[str, Any]]:
        row = await self.db.fetch_one(
            f"SELECT {TENANT_COLUMNS} FROM tenants WHERE domain = $1", domain
        )
        return _as_dict(row)

    async def set_google_tokens(self, tenant_id: str, access_token: str,
                                refresh_token: Optional[str], expires_at: datetime) -> None:
        """Store a new token pair; a missing refresh token keeps the stored one"""
        await self.db.execute('''
            UPDATE tenants
            SET google_access_token = $2,
                google_refresh_token = COALESCE($3, google_refresh_token),
                google_token_expires_at = $4,
                is_google_connected = TRUE
            WHERE id = $1
        ''', tenant_id, access_token, refresh_token, expires_at)

    async def update_google_access_token(self, tenant_id: str, access_token: str,
                                         expires_at: datetime) -> None:
        await self.db.execute('''
            UPDATE tenants
            SET google_access_token = $2, google_token_expires_at = $3
            WHERE id = $1
        ''', tenant_id, access_token, expires_at)

    async def clear_google_tokens(self, tenant_id: str) -> None:
        await self.db.execute('''
            UPDATE tenants
            SET google_access_token = NULL,
                google_refresh_token = NULL,
                google_token_expires_at = NULL,
                is_google_connected = FALSE
            WHERE id = $1
        ''', tenant_id)

    # ==================== CLIENTS ====================

    async def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        row = await self.db.fetch_one(
            f"SELECT {CLIENT_COLUMNS} FROM clients WHERE id = $1", client_id
        )
        return _as_dict(row)

    async def get_client_by_email(self, tenant_id: str, email: str) -> Optional[Dict[str, Any]]:
        row = await self.db.fetch_one(
            f"SELECT {CLIENT_COLUMNS} FROM clients WHERE tenant_id = $1 AND email = $2",
            tenant_id, email
        )
        return _as_dict(row)

    async def touch_last_login(self, client_id: str, at: datetime) -> None:
        await self.db.execute(
            "UPDATE clients SET last_login_at = $2 WHERE id = $1", client_id, at
        )

    # ==================== SESSIONS ====================

    async def create_session(self, client_id: str, tenant_id: str, session_token: str,
                             created_at: datetime, expires_at: datetime) -> Dict[str, Any]:
        row = await self.db.fetch_one('''
            INSERT INTO dashboard_sessions (client_id, tenant_id, session_token, created_at, expires_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id, client_id, tenant_id, session_token, created_at, expires_at
        ''', client_id, tenant_id, session_token, created_at, expires_at)
        return dict(row)

    async def get_session_by_token(self, session_token: str) -> Optional[Dict[str, Any]]:
        row = await self.db.fetch_one('''
            SELECT id, client_id, tenant_id, session_token, created_at, expires_at
            FROM dashboard_sessions
            WHERE session_token = $1
        ''', session_token)
        return _as_dict(row)

    async def delete_session(self, session_token: str) -> bool:
        result = await self.db.execute(
            "DELETE FROM dashboard_sessions WHERE session_token = $1", session_token
        )
        # asyncpg status string: "DELETE <count>"
        return bool(result) and result.split()[-1] != "0"

    # ==================== METRICS ====================

    async def upsert_metric(self, tenant_id: str, metric_date: date, source: str,
                            data: Dict[str, Any], updated_at: datetime) -> None:
        await self.db.execute('''
            INSERT INTO metrics (tenant_id, date, source, data, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (tenant_id, date, source) DO UPDATE SET
                data = EXCLUDED.data,
                updated_at = EXCLUDED.updated_at
        ''', tenant_id, metric_date, source, data, updated_at)

    async def get_metrics_since(self, tenant_id: str, start_date: date) -> List[Dict[str, Any]]:
        rows = await self.db.fetch_all('''
            SELECT tenant_id, date, source, data, updated_at
            FROM metrics
            WHERE tenant_id = $1 AND date >= $2
            ORDER BY date, source
        ''', tenant_id, start_date)
        return [dict(row) for row in rows]

    # ==================== DEMO DATA ====================

    async def create_demo_tenant(self, tenant: Dict[str, Any], client: Dict[str, Any],
                                 metrics: Iterable[Dict[str, Any]]) -> str:
        """Insert tenant, client and metric rows atomically; returns the tenant id"""
        async with self.db.transaction() as conn:
            tenant_id = await conn.fetchval('''
                INSERT INTO tenants (name, domain, google_analytics_property_id,
                                     search_console_url, is_active, is_google_connected)
                VALUES ($1, $2, $3, $4, TRUE, FALSE)
                RETURNING id
            ''', tenant['name'], tenant['domain'], tenant.get('google_analytics_property_id'),
                tenant.get('search_console_url'))

            await conn.execute('''
                INSERT INTO clients (tenant_id, email, name, hashed_password, role, is_active)
                VALUES ($1, $2, $3, $4, $5, TRUE)
            ''', tenant_id, client['email'], client['name'], client['hashed_password'], client['role'])

            await conn.executemany('''
                INSERT INTO metrics (tenant_id, date, source, data, updated_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (tenant_id, date, source) DO NOTHING
            ''', [
                (tenant_id, m['date'], m['source'], m['data'], m['updated_at'])
                for m in metrics
            ])

        return str(tenant_id)


# Global instance
dashboard_db = DashboardDatabase()

# pulseboard/core/auth.py
"""
Authentication system for Pulseboard
Handles client login, session management, and password verification

Sessions are rows in dashboard_sessions carrying an opaque token and an
absolute expiry. A session counts as valid only while its expiry is in the
future AND both its client and its tenant are still active. Expired rows are
left in place; they simply stop validating.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import bcrypt

from config.settings import settings
from ..dashboard.database_manager import dashboard_db
from .errors import (
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTenantError,
    PermissionDeniedError,
)
from .safe_logger import redact_token

logger = logging.getLogger(__name__)

__all__ = [
    'AuthManager',
    'SessionContext',
    'auth_manager',
    'generate_session_token',
    'hash_password',
    'verify_password',
]

BASE36_ALPHABET = '0123456789abcdefghijklmnopqrstuvwxyz'
TOKEN_FRAGMENT_LENGTH = 13

ROLE_ADMIN = 'admin'
ROLE_VIEWER = 'viewer'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Stored without timezone means UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _base36_fragment(length: int = TOKEN_FRAGMENT_LENGTH) -> str:
    return ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def generate_session_token() -> str:
    """Opaque session token: two concatenated base-36 random fragments"""
    return _base36_fragment() + _base36_fragment()


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12)).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash"""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Not a bcrypt hash
        logger.error("Stored password hash is not a valid bcrypt hash")
        return False


@dataclass
class SessionContext:
    """A validated session with its client and tenant rows"""
    session: Dict[str, Any]
    client: Dict[str, Any]
    tenant: Dict[str, Any]

    @property
    def tenant_id(self) -> str:
        return str(self.tenant['id'])

    @property
    def is_admin(self) -> bool:
        return self.client.get('role') == ROLE_ADMIN

    def projection(self) -> Dict[str, Any]:
        """Client/tenant view returned to the dashboard (no secrets)"""
        return {
            'client': {
                'id': str(self.client['id']),
                'name': self.client.get('name'),
                'email': self.client.get('email'),
                'role': self.client.get('role'),
            },
            'tenant': {
                'id': str(self.tenant['id']),
                'name': self.tenant.get('name'),
                'domain': self.tenant.get('domain'),
                'is_google_connected': bool(self.tenant.get('is_google_connected')),
            },
        }


class AuthManager:
    """
    Authentication and session management for Pulseboard
    """

    def __init__(self, db=None, clock: Callable[[], datetime] = None,
                 session_timeout: Optional[timedelta] = None):
        self.db = db or dashboard_db
        self.clock = clock or _utcnow
        self.session_timeout = session_timeout or timedelta(hours=settings.session_timeout_hours)

    # =========================================================================
    # Client Authentication
    # =========================================================================

    async def authenticate_client(self, email: str, password: str, tenant_domain: str) -> Dict[str, Any]:
        """
        Authenticate a client within a tenant and open a session.

        Wrong email, inactive client and wrong password all raise the same
        InvalidCredentialsError so callers cannot probe for accounts.
        """
        tenant = await self.db.get_tenant_by_domain(tenant_domain)
        if not tenant or not tenant.get('is_active'):
            logger.warning(f"Authentication failed: unknown or inactive tenant {tenant_domain}")
            raise InvalidTenantError()

        client = await self.db.get_client_by_email(str(tenant['id']), email)
        if not client or not client.get('is_active'):
            logger.warning(f"Authentication failed: no active client {email} in {tenant_domain}")
            raise InvalidCredentialsError()

        if not verify_password(password, client.get('hashed_password')):
            logger.warning(f"Authentication failed: invalid password for {email} in {tenant_domain}")
            raise InvalidCredentialsError()

        session_token = await self.create_session(client, tenant)

        await self.db.touch_last_login(str(client['id']), self.clock())

        logger.info(f"Client {email} logged in to {tenant_domain}")

        context = SessionContext(session={}, client=client, tenant=tenant)
        return {
            'session_token': session_token,
            **context.projection(),
        }

    # =========================================================================
    # Session Management
    # =========================================================================

    async def create_session(self, client: Dict[str, Any], tenant: Dict[str, Any]) -> str:
        """Insert a session row with an absolute expiry and return its token"""
        now = self.clock()
        session_token = generate_session_token()

        await self.db.create_session(
            str(client['id']),
            str(tenant['id']),
            session_token,
            now,
            now + self.session_timeout
        )

        logger.debug(f"Session {redact_token(session_token)} created for {client.get('email')}")
        return session_token

    async def load_session(self, session_token: str) -> Optional[SessionContext]:
        """Return the session context, or None if the token does not validate"""
        if not session_token:
            return None

        session = await self.db.get_session_by_token(session_token)
        if not session:
            logger.debug(f"Session {redact_token(session_token)} not found")
            return None

        if _as_utc(session['expires_at']) <= self.clock():
            logger.info(f"Session {redact_token(session_token)} expired")
            return None

        client = await self.db.get_client(str(session['client_id']))
        tenant = await self.db.get_tenant(str(session['tenant_id']))

        if not client or not tenant or not client.get('is_active') or not tenant.get('is_active'):
            logger.info(f"Session {redact_token(session_token)} belongs to an inactive client or tenant")
            return None

        return SessionContext(session=session, client=client, tenant=tenant)

    async def validate_session(self, session_token: str) -> Optional[Dict[str, Any]]:
        """Client/tenant projection for a valid session, None otherwise"""
        context = await self.load_session(session_token)
        return context.projection() if context else None

    async def require_session(self, session_token: str) -> SessionContext:
        context = await self.load_session(session_token)
        if not context:
            raise InvalidSessionError()
        return context

    async def require_admin(self, session_token: str, action: str = "manage") -> SessionContext:
        """Valid session whose client has the admin role"""
        context = await self.require_session(session_token)
        if not context.is_admin:
            logger.warning(f"Client {context.client.get('email')} attempted to {action} Google services")
            raise PermissionDeniedError(f"Only admins can {action} Google services")
        return context

    async def logout_client(self, session_token: str) -> Dict[str, Any]:
        """Delete the session row if it exists; always succeeds"""
        if session_token:
            deleted = await self.db.delete_session(session_token)
            if deleted:
                logger.info(f"Session {redact_token(session_token)} logged out")
        return {'success': True}


# Global instance
auth_manager = AuthManager()

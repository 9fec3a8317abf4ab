# pulseboard/integrations/google/oauth_manager.py
"""
Google OAuth Manager
Per-tenant OAuth web flow and token lifecycle

Tenant connection states:
    disconnected -> pending (auth URL issued) -> connected (tokens stored)
    connected -> refreshed (access token replaced after a 401)
    connected -> disconnected (admin disconnects)

The OAuth `state` parameter is a Fernet token wrapping the admin's session
token. It is authenticated, so a forged state cannot bind tokens to another
tenant, and it expires after STATE_TOKEN_MAX_AGE_SECONDS.

Access and refresh tokens are encrypted before they reach the database.
"""

import html
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import aiohttp

from config.settings import settings
from . import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    HTTP_TIMEOUT_SECONDS,
    OAUTH_SCOPES,
    STATE_TOKEN_MAX_AGE_SECONDS,
)
from ...core.auth import auth_manager
from ...core.crypto import InvalidToken, decrypt_json, decrypt_token, encrypt_json, encrypt_token
from ...core.errors import GoogleAuthenticationError, GoogleNotConnectedError, GoogleTokenExpiredError
from ...dashboard.database_manager import dashboard_db

logger = logging.getLogger(__name__)

__all__ = [
    'GoogleAuthManager',
    'google_auth_manager',
    'render_callback_page',
]

SUCCESS_MESSAGE = "Successfully connected to Google! You can close this window."
FAILURE_MESSAGE = "Failed to connect to Google"
MISSING_PARAMS_MESSAGE = "Missing authorization code or state"


def render_callback_page(message: str) -> str:
    """HTML document for the OAuth popup; its script closes the window"""
    return (
        "<html><body><script>window.close();</script>"
        f"<h1>{message}</h1>"
        "</body></html>"
    )


class GoogleAuthManager:
    """
    Google OAuth web flow for tenant admins
    """

    def __init__(self, db=None, auth=None, config=None, clock: Callable[[], datetime] = None):
        self.db = db or dashboard_db
        self.auth = auth or auth_manager
        self.settings = config or settings
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        # OAuth URLs
        self.auth_url = GOOGLE_AUTH_URL
        self.token_url = GOOGLE_TOKEN_URL
        self.oauth_scopes = list(OAUTH_SCOPES)

        # Set lazily to avoid a circular import with data_sync
        self.data_sync = None

    @property
    def client_id(self) -> Optional[str]:
        return self.settings.google_client_id

    @property
    def client_secret(self) -> Optional[str]:
        return self.settings.google_client_secret

    @property
    def redirect_uri(self) -> Optional[str]:
        return self.settings.oauth_redirect_uri

    # =========================================================================
    # Authorization URL and state
    # =========================================================================

    async def generate_auth_url(self, session_token: str) -> Dict[str, str]:
        """
        Build the Google consent URL for an admin session

        Returns:
            {'auth_url': ...}
        """
        context = await self.auth.require_admin(session_token, "connect")
        self.settings.require_google_oauth()

        params = {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(self.oauth_scopes),
            'state': self.encode_state(session_token),
            'access_type': 'offline',
            'prompt': 'consent'
        }

        logger.info(f"OAuth web flow started for tenant {context.tenant.get('domain')}")
        return {'auth_url': f"{self.auth_url}?{urlencode(params)}"}

    def encode_state(self, session_token: str) -> str:
        return encrypt_json({'session_token': session_token})

    def decode_state(self, state: str) -> str:
        """Session token carried by a state value this server issued"""
        try:
            payload = decrypt_json(state, ttl=STATE_TOKEN_MAX_AGE_SECONDS)
        except (InvalidToken, ValueError, TypeError):
            raise GoogleAuthenticationError("Invalid or expired OAuth state")

        session_token = payload.get('session_token') if isinstance(payload, dict) else None
        if not session_token:
            raise GoogleAuthenticationError("Invalid or expired OAuth state")
        return session_token

    # =========================================================================
    # Token endpoint
    # =========================================================================

    async def _post_token_endpoint(self, payload: Dict[str, str]) -> Tuple[int, Any]:
        """POST a form to the token endpoint; returns (status, json or text)"""
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.token_url, data=payload) as response:
                if response.status != 200:
                    return response.status, await response.text()
                return response.status, await response.json()

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens"""
        payload = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'code': code,
            'redirect_uri': self.redirect_uri,
            'grant_type': 'authorization_code'
        }

        try:
            status, body = await self._post_token_endpoint(payload)
        except aiohttp.ClientError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise GoogleAuthenticationError("Failed to exchange code for tokens")

        if status != 200:
            logger.error(f"Token exchange failed ({status}): {str(body)[:200]}")
            raise GoogleAuthenticationError("Failed to exchange code for tokens")

        return body

    async def refresh_access_token(self, refresh_token: Optional[str]) -> Tuple[str, int]:
        """
        Trade the refresh token for a new access token

        Returns:
            (access_token, expires_in seconds)
        """
        if not refresh_token:
            raise GoogleTokenExpiredError()

        payload = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'refresh_token': refresh_token,
            'grant_type': 'refresh_token'
        }

        try:
            status, body = await self._post_token_endpoint(payload)
        except aiohttp.ClientError as e:
            logger.error(f"Token refresh request failed: {e}")
            raise GoogleTokenExpiredError()

        if status != 200:
            # 400 invalid_grant means the refresh token was revoked
            logger.error(f"Token refresh failed ({status}): {str(body)[:200]}")
            raise GoogleTokenExpiredError()

        expires_in = int(body.get('expires_in') or DEFAULT_TOKEN_LIFETIME_SECONDS)
        logger.info(f"Access token refreshed, expires in {expires_in}s")
        return body['access_token'], expires_in

    # =========================================================================
    # Token storage
    # =========================================================================

    async def store_google_tokens(self, session_token: str, access_token: str,
                                  refresh_token: Optional[str], expires_in: int) -> Dict[str, Any]:
        """Store a fresh token pair on the session's tenant and mark it connected"""
        context = await self.auth.require_session(session_token)

        expires_at = self.clock() + timedelta(seconds=int(expires_in))
        await self.db.set_google_tokens(
            context.tenant_id,
            encrypt_token(access_token),
            encrypt_token(refresh_token) if refresh_token else None,
            expires_at
        )

        logger.info(f"Google connected for tenant {context.tenant.get('domain')}")
        return {'success': True}

    async def update_google_tokens(self, tenant_id: str, access_token: str,
                                   expires_in: int) -> Dict[str, Any]:
        """Replace only the access token and its expiry"""
        expires_at = self.clock() + timedelta(seconds=int(expires_in))
        await self.db.update_google_access_token(str(tenant_id), encrypt_token(access_token), expires_at)

        logger.debug(f"Updated access token for tenant {tenant_id}")
        return {'success': True}

    async def disconnect_google(self, session_token: str) -> Dict[str, Any]:
        context = await self.auth.require_admin(session_token, "disconnect")

        await self.db.clear_google_tokens(context.tenant_id)

        logger.info(f"Google disconnected for tenant {context.tenant.get('domain')}")
        return {'success': True}

    async def get_tenant_tokens(self, tenant_id: str) -> Dict[str, Any]:
        """
        Tenant row with 'access_token' and 'refresh_token' decrypted

        A tenant that was never connected comes back with both set to None.
        """
        tenant = await self.db.get_tenant(str(tenant_id))
        if not tenant:
            raise GoogleNotConnectedError("Tenant not found")

        try:
            access_token = decrypt_token(tenant['google_access_token']) if tenant.get('google_access_token') else None
            refresh_token = decrypt_token(tenant['google_refresh_token']) if tenant.get('google_refresh_token') else None
        except InvalidToken:
            # Encrypted under a different ENCRYPTION_KEY
            logger.error(f"Stored Google tokens for tenant {tenant_id} could not be decrypted")
            raise GoogleTokenExpiredError()

        return {**tenant, 'access_token': access_token, 'refresh_token': refresh_token}

    # =========================================================================
    # Callback
    # =========================================================================

    async def handle_oauth_callback(self, code: Optional[str], state: Optional[str],
                                    error: Optional[str] = None) -> Tuple[str, int]:
        """
        Complete the OAuth flow from Google's redirect

        Returns:
            (html page, HTTP status)
        """
        if error:
            logger.warning(f"Google authorization failed: {error}")
            return render_callback_page(f"Authorization failed: {html.escape(error)}"), 400

        if not code or not state:
            return render_callback_page(MISSING_PARAMS_MESSAGE), 400

        try:
            session_token = self.decode_state(state)
            tokens = await self.exchange_code(code)

            await self.store_google_tokens(
                session_token,
                tokens['access_token'],
                tokens.get('refresh_token'),
                tokens.get('expires_in') or DEFAULT_TOKEN_LIFETIME_SECONDS
            )

            # Initial data pull so the dashboard shows live numbers right away
            await self._get_data_sync().fetch_google_data(session_token)

            return render_callback_page(SUCCESS_MESSAGE), 200

        except Exception as e:
            logger.exception(f"OAuth callback failed: {e}")
            return render_callback_page(FAILURE_MESSAGE), 500

    def _get_data_sync(self):
        if self.data_sync is None:
            from .data_sync import google_data_sync
            self.data_sync = google_data_sync
        return self.data_sync


# Global instance
google_auth_manager = GoogleAuthManager()

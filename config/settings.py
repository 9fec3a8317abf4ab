"""
Environment configuration management for Pulseboard.
Single source of truth for all environment variables.

Settings are read once at import time; nothing is enforced until
settings.validate() runs during application startup, so modules can be
imported (and tested) without a full environment.
"""

import os
from typing import List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

# Variables the service cannot run without
REQUIRED_VARS = (
    "DATABASE_URL",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "SITE_URL",
)

# Subset needed for the Google OAuth flow
GOOGLE_OAUTH_VARS = (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "SITE_URL",
)

GOOGLE_SETUP_INSTRUCTIONS = """
To set up Google OAuth:
1. Go to Google Cloud Console (https://console.cloud.google.com)
2. Create OAuth 2.0 credentials (Web application)
3. Add <SITE_URL>/google/callback as an authorized redirect URI
4. Set these environment variables:
   GOOGLE_CLIENT_ID=your_client_id
   GOOGLE_CLIENT_SECRET=your_client_secret
   SITE_URL=https://your-deployment-url"""


class ConfigurationError(ValueError):
    """Raised when required environment variables are missing."""

    def __init__(self, missing_vars: List[str], message: Optional[str] = None):
        self.missing_vars = list(missing_vars)
        super().__init__(
            message or f"Missing required environment variables: {', '.join(self.missing_vars)}"
        )


class Settings:
    """Application settings from environment variables."""

    def __init__(self):
        self.database_url: Optional[str] = self._get_optional("DATABASE_URL")
        self.google_client_id: Optional[str] = self._get_optional("GOOGLE_CLIENT_ID")
        self.google_client_secret: Optional[str] = self._get_optional("GOOGLE_CLIENT_SECRET")
        site_url = self._get_optional("SITE_URL")
        self.site_url: Optional[str] = site_url.rstrip("/") if site_url else None
        self.environment: str = self._get_optional("ENVIRONMENT", "development")
        self.debug: bool = self._get_optional("DEBUG", "false").lower() == "true"
        self.log_level: str = self._get_optional("LOG_LEVEL", "INFO").upper()
        self.log_format: str = self._get_optional("LOG_FORMAT", "text").lower()
        self.session_timeout_hours: int = int(self._get_optional("SESSION_TIMEOUT_HOURS", "24"))

    def _get_optional(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get optional environment variable with default (empty counts as unset)."""
        value = os.getenv(key)
        return value if value else default

    @property
    def oauth_redirect_uri(self) -> Optional[str]:
        if not self.site_url:
            return None
        return f"{self.site_url}/google/callback"

    def missing_vars(self, names=REQUIRED_VARS) -> List[str]:
        attrs = {
            "DATABASE_URL": self.database_url,
            "GOOGLE_CLIENT_ID": self.google_client_id,
            "GOOGLE_CLIENT_SECRET": self.google_client_secret,
            "SITE_URL": self.site_url,
        }
        return [name for name in names if not attrs.get(name)]

    def validate(self) -> None:
        """Raise a single ConfigurationError naming every missing variable."""
        missing = self.missing_vars()
        if missing:
            raise ConfigurationError(missing)

    def google_oauth_status(self) -> Tuple[bool, List[str]]:
        missing = self.missing_vars(GOOGLE_OAUTH_VARS)
        return not missing, missing

    def require_google_oauth(self) -> None:
        """Ensure the Google OAuth client is configured before starting a flow."""
        configured, missing = self.google_oauth_status()
        if not configured:
            raise ConfigurationError(
                missing,
                "Google OAuth not configured. Missing environment variables: "
                f"{', '.join(missing)}.\n{GOOGLE_SETUP_INSTRUCTIONS}",
            )


# Global settings instance
settings = Settings()

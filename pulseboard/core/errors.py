# pulseboard/core/errors.py
"""
User-facing error hierarchy for Pulseboard.

Every error carries the message shown to the dashboard user and the HTTP
status the routers translate it to. Wrong email and wrong password share
one message.
"""

__all__ = [
    'DashboardError',
    'InvalidTenantError',
    'InvalidCredentialsError',
    'InvalidSessionError',
    'PermissionDeniedError',
    'MetricValidationError',
    'GoogleNotConnectedError',
    'GoogleAuthenticationError',
    'GoogleTokenExpiredError',
    'GoogleApiError',
    'GoogleApiUnauthorizedError',
]


class DashboardError(Exception):
    """Base class for errors surfaced directly to the dashboard user"""
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTenantError(DashboardError):
    status_code = 401
    default_message = "Invalid tenant domain"


class InvalidCredentialsError(DashboardError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidSessionError(DashboardError):
    status_code = 401
    default_message = "Invalid session"


class PermissionDeniedError(DashboardError):
    status_code = 403
    default_message = "Only admins can manage Google services"


class MetricValidationError(DashboardError):
    status_code = 422
    default_message = "Invalid metric"


class GoogleNotConnectedError(DashboardError):
    status_code = 400
    default_message = "Google not connected for this tenant"


class GoogleAuthenticationError(DashboardError):
    """OAuth exchange or state verification failed"""
    status_code = 502
    default_message = "Failed to connect to Google"


class GoogleTokenExpiredError(GoogleAuthenticationError):
    """Token expired and the single refresh attempt failed"""
    status_code = 401
    default_message = "Google authentication expired. Please reconnect."


class GoogleApiError(DashboardError):
    """A Google reporting API answered with an error"""
    status_code = 502
    default_message = "Google API request failed"


class GoogleApiUnauthorizedError(GoogleApiError):
    """A Google reporting API answered 401"""
    status_code = 401
    default_message = "Google API rejected the access token"

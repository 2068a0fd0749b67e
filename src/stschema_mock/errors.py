"""
Error hierarchy for the ST-Schema mock server

Every failure raised by the OAuth flow, the device layer or the callback
bridge derives from SchemaMockError. The HTTP routes and the interaction
dispatcher translate these into JSON bodies using ``error`` and
``status_code``; nothing else leaks to the caller.
"""

from typing import Dict, Any


class SchemaMockError(Exception):
    """Base error carrying an OAuth-style error code and an HTTP status"""

    status_code: int = 500
    default_error: str = "server_error"

    def __init__(self, description: str = "", error: str = ""):
        self.error = error or self.default_error
        self.description = description
        super().__init__(f"{self.error}: {description}" if description else self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error}


# Validation errors (400)

class ValidationError(SchemaMockError):
    """Missing or malformed request fields"""
    status_code = 400
    default_error = "invalid_request"


class InvalidRedirect(ValidationError):
    default_error = "invalid_redirect_uri"


class MissingCredentials(ValidationError):
    default_error = "missing_credentials"


class MissingGrantType(ValidationError):
    default_error = "missing_grant_type"


class UnsupportedGrantType(ValidationError):
    default_error = "unsupported_grant_type"


class UnsupportedDeviceType(ValidationError):
    default_error = "unsupported_device_type"


class MissingCallbackUrl(ValidationError):
    default_error = "missing_callback_url"


# Lookup failures

class NotFoundError(SchemaMockError):
    status_code = 404
    default_error = "not_found"


class InvalidGrant(NotFoundError):
    """Unknown, redeemed or expired authorization code"""
    status_code = 400
    default_error = "invalid_grant"


class DeviceNotFound(NotFoundError):
    default_error = "device_not_found"


# Authentication errors (401)

class AuthError(SchemaMockError):
    status_code = 401
    default_error = "unauthorized"


class MissingToken(AuthError):
    default_error = "missing_token"


class InvalidToken(AuthError):
    default_error = "invalid_token"


# Server side failures (500)

class UpstreamError(SchemaMockError):
    """A partner endpoint we called failed; the cause is logged, not exposed"""
    status_code = 500
    default_error = "upstream_error"


class UpstreamTokenExchangeFailed(UpstreamError):
    default_error = "upstream_token_exchange_failed"


class InternalError(SchemaMockError):
    status_code = 500
    default_error = "Internal server error"


class DeviceUnavailable(SchemaMockError):
    """Command could not be applied; reported per device as DEVICE-UNAVAILABLE"""
    status_code = 500
    default_error = "DEVICE-UNAVAILABLE"

"""
OAuth 2.0 Authorization Code Flow for the mock partner server

Implements the single-client authorization-code grant:
- Login challenge and credential submission (any non-empty pair is accepted)
- Single-use authorization codes with a TTL
- Signed access tokens and opaque refresh tokens
- Bearer token introspection for /userinfo
"""

import logging
import secrets
from typing import Optional
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from ..errors import (
    InvalidRedirect,
    MissingCredentials,
    MissingGrantType,
    UnsupportedGrantType,
    InvalidGrant,
    MissingToken,
    InvalidToken,
)
from ..models import TokenPair, IdentityClaims, LoginChallenge
from ..security.audit_logger import SecurityAuditLogger, AuditEventType
from .token_manager import TokenManager, TokenError
from .token_store import TokenStore

logger = logging.getLogger(__name__)

AUTHORIZATION_CODE_GRANT = "authorization_code"
BEARER_PREFIX = "Bearer "


class AuthorizationCodeFlow:
    """
    Mock authorization server for the OAuth 2.0 authorization-code grant

    The flow owns its TokenStore; codes and tokens live only in memory.
    """

    def __init__(self,
                 token_manager: TokenManager,
                 token_store: TokenStore,
                 audit_logger: Optional[SecurityAuditLogger] = None,
                 identity_email_domain: str = "example.com"):
        """
        Initialize the flow

        Args:
            token_manager: Signs and verifies access tokens
            token_store: Code and token bookkeeping
            audit_logger: Optional security audit trail
            identity_email_domain: Domain used for derived userinfo emails
        """
        self.token_manager = token_manager
        self.token_store = token_store
        self.audit_logger = audit_logger
        self.identity_email_domain = identity_email_domain

    def begin_authorization(self,
                            client_id: Optional[str],
                            redirect_uri: Optional[str],
                            state: Optional[str] = None) -> LoginChallenge:
        """
        Describe the login form for an authorization request

        Args:
            client_id: OAuth client identifier
            redirect_uri: Where the code will be delivered
            state: Opaque client state, echoed back on redirect

        Returns:
            LoginChallenge with the hidden form fields

        Raises:
            InvalidRedirect: If redirect_uri is not an absolute URL
        """
        self._validate_redirect_uri(redirect_uri, client_id)
        return LoginChallenge(client_id=client_id, redirect_uri=redirect_uri, state=state or "")

    def submit_credentials(self,
                           username: Optional[str],
                           password: Optional[str],
                           client_id: Optional[str],
                           redirect_uri: Optional[str],
                           state: Optional[str] = None) -> str:
        """
        Accept a login submission and mint an authorization code

        No password check is performed; any non-empty pair is accepted.

        Returns:
            redirect_uri with ``code`` (and ``state``) in the query string

        Raises:
            MissingCredentials: If username or password is empty
            InvalidRedirect: If redirect_uri is not an absolute URL
        """
        if not username or not password:
            if self.audit_logger:
                self.audit_logger.log_oauth_failure(
                    AuditEventType.AUTH_FAILURE, "missing_credentials", client_id=client_id
                )
            raise MissingCredentials("Missing username or password")

        self._validate_redirect_uri(redirect_uri, client_id)

        code = secrets.token_urlsafe(32)
        self.token_store.save_code(code, client_id=client_id, subject=username,
                                   redirect_uri=redirect_uri)

        logger.info(f"Authorization code issued for client {client_id}")
        if self.audit_logger:
            self.audit_logger.log_code_issued(username, client_id)

        params = {"code": code}
        if state:
            params["state"] = state
        return self._append_query(redirect_uri, params)

    def exchange_code(self, grant_type: Optional[str], code: Optional[str]) -> TokenPair:
        """
        Redeem an authorization code for a token pair

        Args:
            grant_type: Must be ``authorization_code``
            code: Code issued by submit_credentials

        Returns:
            TokenPair with a signed access token and an opaque refresh token

        Raises:
            MissingGrantType: If grant_type is absent
            UnsupportedGrantType: If grant_type is anything else
            InvalidGrant: If the code is unknown, redeemed or expired
        """
        if not grant_type:
            raise MissingGrantType("grant_type is required")

        if grant_type != AUTHORIZATION_CODE_GRANT:
            raise UnsupportedGrantType(f"Grant type '{grant_type}' is not supported")

        record = self.token_store.redeem_code(code)
        if record is None:
            if self.audit_logger:
                self.audit_logger.log_oauth_failure(
                    AuditEventType.OAUTH_INVALID_GRANT, "invalid_grant",
                    "Unknown, redeemed or expired authorization code"
                )
            raise InvalidGrant("Invalid authorization code")

        token_context = self.token_manager.create_access_token(subject=record.subject)
        refresh_token = self.token_manager.create_refresh_token()

        self.token_store.save_access_token(token_context.access_token, record.subject, record.client_id)
        self.token_store.save_refresh_token(refresh_token, record.subject, record.client_id)

        logger.info(f"Access token issued for client {record.client_id}")
        if self.audit_logger:
            self.audit_logger.log_token_issued(record.subject, record.client_id,
                                               jti=token_context.metadata["jti"])

        return TokenPair(
            access_token=token_context.access_token,
            refresh_token=refresh_token,
            token_type=token_context.token_type,
            expires_in=token_context.expires_in
        )

    def introspect(self, bearer_header: Optional[str]) -> IdentityClaims:
        """
        Validate an ``Authorization: Bearer`` header

        Returns:
            Identity claims derived from the token subject

        Raises:
            MissingToken: If the header is absent or not Bearer
            InvalidToken: If the signature is wrong or the token expired
        """
        if not bearer_header or not bearer_header.startswith(BEARER_PREFIX):
            raise MissingToken("Missing bearer token")

        token = bearer_header[len(BEARER_PREFIX):].strip()
        try:
            claims = self.token_manager.verify_access_token(token)
        except TokenError as e:
            if self.audit_logger:
                self.audit_logger.log_oauth_failure(
                    AuditEventType.AUTHZ_ACCESS_DENIED, "invalid_token", str(e)
                )
            raise InvalidToken(str(e))

        subject = claims["sub"]
        return IdentityClaims(
            sub=subject,
            name=subject,
            email=f"{subject}@{self.identity_email_domain}"
        )

    def _validate_redirect_uri(self, redirect_uri: Optional[str], client_id: Optional[str]) -> None:
        parsed = urlparse(redirect_uri or "")
        if not parsed.scheme or not parsed.netloc:
            logger.warning(f"Rejected redirect URI for client {client_id}: {redirect_uri!r}")
            if self.audit_logger:
                self.audit_logger.log_oauth_failure(
                    AuditEventType.OAUTH_INVALID_REDIRECT, "invalid_redirect_uri",
                    client_id=client_id
                )
            raise InvalidRedirect(f"redirect_uri must be an absolute URL: {redirect_uri!r}")

    @staticmethod
    def _append_query(url: str, params: dict) -> str:
        parsed = urlparse(url)
        query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in params]
        query.extend(params.items())
        return urlunparse(parsed._replace(query=urlencode(query)))


def create_authorization_code_flow(secret_key: str,
                                   access_token_expiry: int = 3600,
                                   auth_code_ttl: int = 600,
                                   audit_logger: Optional[SecurityAuditLogger] = None,
                                   identity_email_domain: str = "example.com") -> AuthorizationCodeFlow:
    """Create the flow with its own token manager and store"""
    return AuthorizationCodeFlow(
        token_manager=TokenManager(secret_key, default_token_expiry=access_token_expiry),
        token_store=TokenStore(code_ttl=auth_code_ttl),
        audit_logger=audit_logger,
        identity_email_domain=identity_email_domain
    )

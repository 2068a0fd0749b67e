"""
Token signing and verification

Access tokens are HS256 JWTs carrying the subject and expiry, so a token
can be validated without any store lookup. Refresh tokens are opaque
random strings.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, Optional
import jwt

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


@dataclass
class TokenContext:
    """Freshly minted access token"""
    access_token: str
    subject: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)


class TokenError(Exception):
    """Token-related errors"""
    pass


class TokenManager:
    """
    Opaque sign/verify pair for bearer tokens

    Features:
    - Signed, self-describing access tokens with fixed expiry
    - Stateless validation (signature and ``exp`` only)
    - Cryptographically random refresh tokens
    """

    def __init__(self,
                 secret_key: str,
                 default_token_expiry: int = 3600):
        """
        Initialize token manager

        Args:
            secret_key: Secret key for token signing
            default_token_expiry: Access token lifetime in seconds
        """
        if not secret_key:
            raise ValueError("A signing secret is required")
        self.secret_key = secret_key
        self.default_token_expiry = default_token_expiry

        logger.info(f"TokenManager initialized with {default_token_expiry}s token expiry")

    def create_access_token(self,
                            subject: str,
                            expires_in: Optional[int] = None) -> TokenContext:
        """
        Create a signed access token

        Args:
            subject: Identity the token is issued to
            expires_in: Lifetime in seconds, defaults to the manager's expiry

        Returns:
            TokenContext with access token details
        """
        if expires_in is None:
            expires_in = self.default_token_expiry

        now = datetime.now(timezone.utc)
        expiry = now + timedelta(seconds=expires_in)

        payload = {
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int(expiry.timestamp()),
            "jti": secrets.token_urlsafe(16)
        }

        access_token = jwt.encode(payload, self.secret_key, algorithm=ALGORITHM)

        logger.debug(f"Created access token for subject {subject}")
        return TokenContext(
            access_token=access_token,
            subject=subject,
            expires_in=expires_in,
            issued_at=now,
            metadata={"jti": payload["jti"], "algorithm": ALGORITHM}
        )

    def create_refresh_token(self) -> str:
        """Generate an opaque refresh token"""
        return secrets.token_hex(32)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry of an access token

        Args:
            token: JWT access token

        Returns:
            Decoded claims

        Raises:
            TokenError: If the token is malformed, forged or expired
        """
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"], "verify_exp": True}
            )
        except jwt.ExpiredSignatureError:
            logger.info("Access token has expired")
            raise TokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"JWT validation failed: {e}")
            raise TokenError(f"Invalid token: {e}")

"""
In-memory store for authorization codes and issued tokens

Codes carry a TTL and are evicted lazily: on redemption, whenever a new
code is issued, and through purge_expired(). Redemption is a single
dict.pop so a code can never be handed out twice.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationCodeRecord:
    """Identity bound to an authorization code"""
    client_id: Optional[str]
    subject: str
    redirect_uri: Optional[str] = None
    expires_at: float = 0.0


@dataclass
class TokenRecord:
    """Bookkeeping entry for an issued access or refresh token"""
    subject: str
    client_id: Optional[str] = None
    token_type: str = "access_token"
    issued_at: float = field(default_factory=time.time)


class TokenStore:
    """
    Process-lifetime store owned by the authorization code flow.

    Nothing is persisted; a restart forgets every code and token.
    """

    def __init__(self, code_ttl: int = 600, clock: Callable[[], float] = time.time):
        self.code_ttl = code_ttl
        self._clock = clock
        self._codes: Dict[str, AuthorizationCodeRecord] = {}
        self._tokens: Dict[str, TokenRecord] = {}
        # subject -> current refresh token
        self._refresh_by_subject: Dict[str, str] = {}

    # Authorization codes

    def save_code(self, code: str, client_id: Optional[str], subject: str,
                  redirect_uri: Optional[str] = None) -> AuthorizationCodeRecord:
        self.purge_expired()
        record = AuthorizationCodeRecord(
            client_id=client_id,
            subject=subject,
            redirect_uri=redirect_uri,
            expires_at=self._clock() + self.code_ttl
        )
        self._codes[code] = record
        return record

    def redeem_code(self, code: Optional[str]) -> Optional[AuthorizationCodeRecord]:
        """
        Remove and return the record for ``code``.

        Returns None for unknown, already redeemed or expired codes.
        """
        if not code:
            return None
        record = self._codes.pop(code, None)
        if record is None:
            return None
        if self._clock() >= record.expires_at:
            logger.info("Authorization code expired before redemption")
            return None
        return record

    def has_code(self, code: str) -> bool:
        return code in self._codes

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [code for code, record in self._codes.items() if now >= record.expires_at]
        for code in expired:
            self._codes.pop(code, None)
        if expired:
            logger.debug(f"Evicted {len(expired)} expired authorization codes")
        return len(expired)

    # Tokens

    def save_access_token(self, token: str, subject: str, client_id: Optional[str] = None) -> None:
        self._tokens[token] = TokenRecord(subject=subject, client_id=client_id,
                                          issued_at=self._clock())

    def save_refresh_token(self, token: str, subject: str, client_id: Optional[str] = None) -> None:
        """Record a refresh token, superseding the subject's previous one"""
        previous = self._refresh_by_subject.get(subject)
        if previous:
            self._tokens.pop(previous, None)
        self._tokens[token] = TokenRecord(subject=subject, client_id=client_id,
                                          token_type="refresh_token", issued_at=self._clock())
        self._refresh_by_subject[subject] = token

    def get_token(self, token: str) -> Optional[TokenRecord]:
        return self._tokens.get(token)

    @property
    def code_count(self) -> int:
        return len(self._codes)

    @property
    def token_count(self) -> int:
        return len(self._tokens)

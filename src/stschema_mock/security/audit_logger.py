"""
Security Audit Logging for the OAuth flow and partner interactions

Provides structured audit logging for:
- Credential submissions and authorization codes
- Token issuance and failed token presentations
- Partner interactions and callback token exchanges
"""

import json
import logging
import hashlib
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict
from enum import Enum

# Configure security logger separately from main application logger
security_logger = logging.getLogger("security_audit")
security_logger.setLevel(logging.INFO)

class AuditEventType(Enum):
    """Types of security audit events"""

    # Authentication events
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"

    # Authorization events
    AUTHZ_TOKEN_ISSUED = "authz_token_issued"
    AUTHZ_ACCESS_DENIED = "authz_access_denied"

    # OAuth specific events
    OAUTH_CODE_ISSUED = "oauth_code_issued"
    OAUTH_CODE_EXCHANGED = "oauth_code_exchanged"
    OAUTH_INVALID_GRANT = "oauth_invalid_grant"
    OAUTH_INVALID_REDIRECT = "oauth_invalid_redirect"

    # Partner interaction events
    INTERACTION_HANDLED = "interaction_handled"
    INTERACTION_REJECTED = "interaction_rejected"
    INTERACTION_FAILED = "interaction_failed"
    CALLBACK_TOKEN_EXCHANGED = "callback_token_exchanged"
    CALLBACK_TOKEN_FAILED = "callback_token_failed"

@dataclass
class AuditEvent:
    """Security audit event data structure"""

    event_type: AuditEventType
    timestamp: datetime
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    request_id: Optional[str] = None
    interaction_type: Optional[str] = None
    success: bool = True
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    risk_score: int = 0  # 0-100, higher = more suspicious

    def __post_init__(self):
        if self.details is None:
            self.details = {}

        if not self.timestamp.tzinfo:
            self.timestamp = self.timestamp.replace(tzinfo=timezone.utc)

class SecurityAuditLogger:
    """
    Security audit logger for the mock authorization server

    Features:
    - Structured JSON lines on a dedicated logger
    - Risk scoring so failures stand out
    - User id hashing
    """

    RISK_SCORES = {
        AuditEventType.AUTH_FAILURE: 30,
        AuditEventType.AUTHZ_ACCESS_DENIED: 40,
        AuditEventType.OAUTH_INVALID_GRANT: 40,
        AuditEventType.OAUTH_INVALID_REDIRECT: 30,
        AuditEventType.INTERACTION_REJECTED: 20,
        AuditEventType.INTERACTION_FAILED: 30,
        AuditEventType.CALLBACK_TOKEN_FAILED: 30,
    }

    def __init__(self,
                 logger_name: str = "security_audit",
                 enabled: bool = True,
                 enable_pii_hashing: bool = True,
                 hash_salt: str = "stschema-audit-salt",
                 max_details_length: int = 2048):
        """
        Initialize security audit logger

        Args:
            logger_name: Logger instance name
            enabled: Emit events at all
            enable_pii_hashing: Whether to hash user identifiers
            hash_salt: Salt for PII hashing
            max_details_length: Maximum length for details field
        """
        self.logger = logging.getLogger(logger_name)
        self.enabled = enabled
        self.enable_pii_hashing = enable_pii_hashing
        self.hash_salt = hash_salt
        self.max_details_length = max_details_length

    def log_event(self, event: AuditEvent) -> None:
        """
        Log security audit event

        Args:
            event: AuditEvent to log
        """
        if not self.enabled:
            return

        try:
            if event.risk_score == 0:
                event.risk_score = self._calculate_risk_score(event)

            if self.enable_pii_hashing:
                event = self._hash_pii(event)

            log_entry = self._format_log_entry(event)

            if event.success and event.risk_score < 30:
                self.logger.info(log_entry)
            elif not event.success and event.risk_score >= 70:
                self.logger.error(log_entry)
            else:
                self.logger.warning(log_entry)

        except Exception as e:
            # Never let audit logging break the application
            self.logger.error(f"Failed to log audit event: {e}")

    def log_code_issued(self, user_id: str, client_id: Optional[str], **kwargs) -> None:
        """Log authorization code issuance after credential submission"""
        self.log_event(AuditEvent(
            event_type=AuditEventType.OAUTH_CODE_ISSUED,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            client_id=client_id,
            details=kwargs
        ))

    def log_token_issued(self, user_id: str, client_id: Optional[str] = None,
                         token_type: str = "access_token", **kwargs) -> None:
        """Log token issuance"""
        self.log_event(AuditEvent(
            event_type=AuditEventType.AUTHZ_TOKEN_ISSUED,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            client_id=client_id,
            details={"token_type": token_type, **kwargs}
        ))

    def log_oauth_failure(self,
                          event_type: AuditEventType,
                          error_code: str,
                          error_message: Optional[str] = None,
                          client_id: Optional[str] = None,
                          **kwargs) -> None:
        """Log a rejected authorize, token or userinfo request"""
        self.log_event(AuditEvent(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            client_id=client_id,
            success=False,
            error_code=error_code,
            error_message=error_message,
            details=kwargs
        ))

    def log_interaction(self,
                        interaction_type: Optional[str],
                        request_id: Optional[str],
                        status_code: int,
                        **kwargs) -> None:
        """Log a partner interaction with its outcome"""
        if status_code < 400:
            event_type = AuditEventType.INTERACTION_HANDLED
        elif status_code < 500:
            event_type = AuditEventType.INTERACTION_REJECTED
        else:
            event_type = AuditEventType.INTERACTION_FAILED

        self.log_event(AuditEvent(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            request_id=request_id,
            interaction_type=interaction_type,
            success=status_code < 400,
            details={"status_code": status_code, **kwargs}
        ))

    def log_callback_exchange(self, client_id: Optional[str], request_id: Optional[str],
                              success: bool, **kwargs) -> None:
        """Log an outbound token exchange on behalf of a partner"""
        self.log_event(AuditEvent(
            event_type=(AuditEventType.CALLBACK_TOKEN_EXCHANGED if success
                        else AuditEventType.CALLBACK_TOKEN_FAILED),
            timestamp=datetime.now(timezone.utc),
            client_id=client_id,
            request_id=request_id,
            success=success,
            details=kwargs
        ))

    def _calculate_risk_score(self, event: AuditEvent) -> int:
        score = self.RISK_SCORES.get(event.event_type, 10)

        if not event.success:
            score += 20

        return min(score, 100)

    def _hash_pii(self, event: AuditEvent) -> AuditEvent:
        # Copy so the caller's event keeps the raw ids
        hashed_event = AuditEvent(**asdict(event))

        if hashed_event.user_id:
            hashed_event.user_id = self._hash_value(hashed_event.user_id)

        return hashed_event

    def _hash_value(self, value: str) -> str:
        """Hash a value with salt"""
        salted_value = f"{value}{self.hash_salt}"
        return hashlib.sha256(salted_value.encode()).hexdigest()[:16]

    def _format_log_entry(self, event: AuditEvent) -> str:
        log_data = {
            "event_type": event.event_type.value,
            "timestamp": event.timestamp.isoformat(),
            "success": event.success,
            "risk_score": event.risk_score
        }

        optional_fields = [
            "user_id", "client_id", "request_id", "interaction_type",
            "error_code", "error_message"
        ]

        for field_name in optional_fields:
            value = getattr(event, field_name)
            if value:
                log_data[field_name] = value

        if event.details:
            details_str = json.dumps(event.details, default=str)
            if len(details_str) > self.max_details_length:
                details_str = details_str[:self.max_details_length] + "..."
            log_data["details"] = details_str

        return json.dumps(log_data, separators=(',', ':'))

# Convenience functions

def get_security_audit_logger(logger_name: str = "security_audit",
                              enabled: bool = True) -> SecurityAuditLogger:
    """Get or create security audit logger instance"""
    return SecurityAuditLogger(logger_name=logger_name, enabled=enabled)

"""
Security module for the ST-Schema mock partner

Provides the security audit trail for OAuth and interaction events.
"""

from .audit_logger import SecurityAuditLogger, AuditEvent, AuditEventType, get_security_audit_logger

__all__ = [
    'SecurityAuditLogger',
    'AuditEvent',
    'AuditEventType',
    'get_security_audit_logger'
]

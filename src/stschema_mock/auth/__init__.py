"""
OAuth module for the ST-Schema mock partner

This module provides:
- The authorization-code flow of the local mock authorization server
- Token signing/verification and the in-memory token store
- The callback access bridge that redeems partner-issued codes
"""

from .oauth_provider import AuthorizationCodeFlow, create_authorization_code_flow
from .token_manager import TokenManager, TokenContext, TokenError
from .token_store import TokenStore, AuthorizationCodeRecord, TokenRecord
from .callback_bridge import CallbackAccessBridge

__all__ = [
    'AuthorizationCodeFlow',
    'create_authorization_code_flow',
    'TokenManager',
    'TokenContext',
    'TokenError',
    'TokenStore',
    'AuthorizationCodeRecord',
    'TokenRecord',
    'CallbackAccessBridge'
]

"""
Callback access bridge

When the partner platform sends ``grantCallbackAccess`` it hands over an
authorization code issued by *its* authorization server. The bridge acts
as an OAuth client and redeems that code at the partner's token URL.
"""

import logging
from typing import Dict, Any, Optional, Union

import httpx

from ..errors import MissingCallbackUrl, UpstreamTokenExchangeFailed
from ..models import (
    CallbackAuthentication,
    EnvelopeHeaders,
    InteractionType,
)
from ..security.audit_logger import SecurityAuditLogger

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_EXPIRES_IN = 86400


class CallbackAccessBridge:
    """Outbound authorization-code grant against a partner token endpoint"""

    def __init__(self,
                 timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 audit_logger: Optional[SecurityAuditLogger] = None):
        """
        Args:
            timeout: Bound for the whole outbound exchange, in seconds
            transport: Optional httpx transport (used by tests)
            audit_logger: Optional security audit trail
        """
        self.timeout = timeout
        self.transport = transport
        self.audit_logger = audit_logger

    async def grant_callback_access(self,
                                    callback_authentication: Union[CallbackAuthentication, Dict[str, Any]],
                                    request_id: Optional[str]) -> Dict[str, Any]:
        """
        Exchange the partner's code for an access/refresh token pair

        Args:
            callback_authentication: Code, client credentials and callback URLs
            request_id: Echoed into the response envelope

        Returns:
            ``accessTokenResponse`` envelope as a dict

        Raises:
            MissingCallbackUrl: If callbackUrls.oauthToken is absent
            UpstreamTokenExchangeFailed: On network errors or a non-2xx reply
        """
        if not isinstance(callback_authentication, CallbackAuthentication):
            callback_authentication = CallbackAuthentication.model_validate(callback_authentication or {})

        token_url = callback_authentication.callback_urls.oauth_token
        if not token_url:
            raise MissingCallbackUrl("missing oauthToken URL in callbackUrls")

        request_body = {
            "grant_type": "authorization_code",
            "code": callback_authentication.code,
            "client_id": callback_authentication.client_id,
            "client_secret": callback_authentication.client_secret,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(token_url, json=request_body)
                response.raise_for_status()
                token_data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"Partner token endpoint returned {e.response.status_code}: {e.response.text}")
            self._audit(callback_authentication, request_id, False, status_code=e.response.status_code)
            raise UpstreamTokenExchangeFailed("Failed to obtain access token from callbackUrls.oauthToken")

        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Partner token exchange failed: {e}")
            self._audit(callback_authentication, request_id, False, reason=type(e).__name__)
            raise UpstreamTokenExchangeFailed("Failed to obtain access token from callbackUrls.oauthToken")

        logger.info(f"Obtained callback access token for client {callback_authentication.client_id}")
        self._audit(callback_authentication, request_id, True)

        headers = EnvelopeHeaders(
            interaction_type=InteractionType.ACCESS_TOKEN_RESPONSE.value,
            request_id=request_id
        )
        return {
            "headers": headers.to_wire(),
            "callbackAuthentication": {
                "tokenType": "Bearer",
                "accessToken": token_data.get("access_token"),
                "refreshToken": token_data.get("refresh_token"),
                "expiresIn": token_data.get("expires_in") or DEFAULT_CALLBACK_EXPIRES_IN,
            },
        }

    def _audit(self, callback_authentication: CallbackAuthentication,
               request_id: Optional[str], success: bool, **kwargs) -> None:
        if self.audit_logger:
            self.audit_logger.log_callback_exchange(
                callback_authentication.client_id, request_id, success, **kwargs
            )

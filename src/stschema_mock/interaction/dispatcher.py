"""
Interaction dispatcher for the partner schema endpoint

Every request arrives as ``{headers: {schema, version, interactionType,
requestId}, ...}``. The dispatcher picks a branch from interactionType,
runs it, and wraps the result in a response envelope that echoes the
requestId. It is also the single place where failures are turned into
HTTP status codes and error bodies.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..auth.callback_bridge import CallbackAccessBridge
from ..auth.oauth_provider import AuthorizationCodeFlow
from ..errors import AuthError, DeviceNotFound, DeviceUnavailable, InternalError, ValidationError
from ..models import (
    DeviceCommand,
    DeviceErrorEnum,
    EnvelopeHeaders,
    InteractionType,
    response_interaction_type,
)
from ..devices.registry import DeviceRegistry
from ..security.audit_logger import SecurityAuditLogger

logger = logging.getLogger(__name__)

DEVICE_UNAVAILABLE_DETAIL = "Device is unavailable"


@dataclass
class DispatchResult:
    """HTTP status and JSON body produced for one interaction"""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


Branch = Callable[[Dict[str, Any], Optional[str]], Awaitable[Dict[str, Any]]]


class InteractionDispatcher:
    """
    Flat dispatch table keyed by interactionType

    Each call is independent; no session is kept between interactions.
    """

    def __init__(self,
                 registry: DeviceRegistry,
                 bridge: CallbackAccessBridge,
                 oauth_flow: Optional[AuthorizationCodeFlow] = None,
                 command_mode: str = "unavailable",
                 command_delay_seconds: float = 0.0,
                 require_partner_token: bool = False,
                 audit_logger: Optional[SecurityAuditLogger] = None):
        """
        Args:
            registry: Devices exposed to the partner
            bridge: Outbound token exchange for grantCallbackAccess
            oauth_flow: Used to check the partner's bearer token when required
            command_mode: ``unavailable`` answers every command with
                DEVICE-UNAVAILABLE, ``delegate`` runs it on the device handler
            command_delay_seconds: Pause before answering a commandRequest
            require_partner_token: Reject envelopes whose authentication
                token does not verify
            audit_logger: Optional security audit trail
        """
        if require_partner_token and oauth_flow is None:
            raise ValueError("require_partner_token needs an AuthorizationCodeFlow")

        self.registry = registry
        self.bridge = bridge
        self.oauth_flow = oauth_flow
        self.command_mode = command_mode
        self.command_delay_seconds = command_delay_seconds
        self.require_partner_token = require_partner_token
        self.audit_logger = audit_logger

        self._branches: Dict[str, Branch] = {
            InteractionType.DISCOVERY_REQUEST.value: self._handle_discovery,
            InteractionType.GRANT_CALLBACK_ACCESS.value: self._handle_grant_callback_access,
            InteractionType.STATE_REFRESH_REQUEST.value: self._handle_state_refresh,
            InteractionType.COMMAND_REQUEST.value: self._handle_command,
        }

    @property
    def supported_interaction_types(self) -> List[str]:
        return list(self._branches)

    async def dispatch(self, body: Any) -> DispatchResult:
        """
        Route one inbound envelope

        Args:
            body: Decoded JSON request body

        Returns:
            DispatchResult; never raises for handler failures
        """
        if not isinstance(body, dict):
            body = {}
        headers = body.get("headers") if isinstance(body.get("headers"), dict) else {}
        interaction_type = headers.get("interactionType")
        request_id = headers.get("requestId")
        if request_id is not None and not isinstance(request_id, str):
            request_id = str(request_id)

        result = await self._dispatch(body, interaction_type, request_id)

        if self.audit_logger:
            self.audit_logger.log_interaction(interaction_type, request_id, result.status_code)
        return result

    async def _dispatch(self, body: Dict[str, Any], interaction_type: Optional[str],
                        request_id: Optional[str]) -> DispatchResult:
        if not interaction_type:
            return DispatchResult(400, {"error": "missing interactionType"})

        if self.require_partner_token:
            denied = self._check_partner_token(body)
            if denied is not None:
                return denied

        branch = self._branches.get(interaction_type) if isinstance(interaction_type, str) else None
        if branch is None:
            logger.warning(f"Unsupported interactionType: {interaction_type}")
            return DispatchResult(400, {"error": f"unsupported interactionType: {interaction_type}"})

        logger.info(f"Handling {interaction_type} (requestId={request_id})")
        try:
            return DispatchResult(200, await branch(body, request_id))

        except ValidationError as e:
            logger.warning(f"Rejected {interaction_type}: {e}")
            return DispatchResult(e.status_code, {"error": e.error, "error_description": e.description})

        except Exception as e:
            logger.error(f"Error handling {interaction_type} (requestId={request_id}): {e}")
            error = InternalError(str(e))
            return DispatchResult(error.status_code, {
                "headers": self._headers(interaction_type, request_id),
                "error": error.error,
            })

    def _check_partner_token(self, body: Dict[str, Any]) -> Optional[DispatchResult]:
        authentication = body.get("authentication") or {}
        token = authentication.get("token") if isinstance(authentication, dict) else None
        try:
            self.oauth_flow.introspect(f"Bearer {token}" if token else None)
        except AuthError as e:
            return DispatchResult(e.status_code, {"error": e.error})
        return None

    @staticmethod
    def _headers(interaction_type: str, request_id: Optional[str]) -> Dict[str, Any]:
        return EnvelopeHeaders(
            interaction_type=response_interaction_type(interaction_type),
            request_id=request_id
        ).to_wire()

    # Branches

    async def _handle_discovery(self, body: Dict[str, Any], request_id: Optional[str]) -> Dict[str, Any]:
        return {
            "headers": self._headers(InteractionType.DISCOVERY_REQUEST.value, request_id),
            "devices": [descriptor.to_wire() for descriptor in self.registry.list_descriptors()],
        }

    async def _handle_grant_callback_access(self, body: Dict[str, Any],
                                            request_id: Optional[str]) -> Dict[str, Any]:
        callback_authentication = dict(body.get("callbackAuthentication") or {})
        # callbackUrls may arrive beside callbackAuthentication instead of inside it
        callback_urls = {
            **(body.get("callbackUrls") or {}),
            **(callback_authentication.get("callbackUrls") or {}),
        }
        callback_authentication["callbackUrls"] = callback_urls
        return await self.bridge.grant_callback_access(callback_authentication, request_id)

    async def _handle_state_refresh(self, body: Dict[str, Any],
                                    request_id: Optional[str]) -> Dict[str, Any]:
        if "devices" in body:
            device_ids = [device.get("externalDeviceId") for device in body.get("devices") or []
                          if isinstance(device, dict) and device.get("externalDeviceId")]
        else:
            device_ids = self.registry.device_ids

        snapshots = await self.registry.refresh_many(device_ids)
        return {
            "headers": self._headers(InteractionType.STATE_REFRESH_REQUEST.value, request_id),
            "deviceState": [snapshot.to_wire() for snapshot in snapshots],
        }

    async def _handle_command(self, body: Dict[str, Any], request_id: Optional[str]) -> Dict[str, Any]:
        if self.command_delay_seconds > 0:
            await asyncio.sleep(self.command_delay_seconds)

        devices = [device for device in body.get("devices") or [] if isinstance(device, dict)]
        if self.command_mode == "delegate":
            device_state = [await self._run_device_commands(device) for device in devices]
        else:
            device_state = [self._device_error(device.get("externalDeviceId"), DEVICE_UNAVAILABLE_DETAIL)
                            for device in devices]

        return {
            "headers": self._headers(InteractionType.COMMAND_REQUEST.value, request_id),
            "deviceState": device_state,
        }

    async def _run_device_commands(self, device: Dict[str, Any]) -> Dict[str, Any]:
        device_id = device.get("externalDeviceId")
        if not isinstance(device_id, str):
            return self._device_error(device_id, "Missing externalDeviceId")
        try:
            commands = [DeviceCommand.model_validate(raw) for raw in device.get("commands") or []]
        except PydanticValidationError as e:
            logger.warning(f"Malformed command for device {device_id}: {e.error_count()} error(s)")
            return self._device_error(device_id, "Malformed command")

        try:
            for command in commands:
                await self._apply_command(device_id, command)

            snapshot = await self.registry.refresh_state(device_id)
        except (DeviceNotFound, DeviceUnavailable) as e:
            return self._device_error(device_id, e.description)

        snapshot.device_cookie = device.get("deviceCookie") or {}
        return snapshot.to_wire()

    async def _apply_command(self, device_id: Optional[str], command: DeviceCommand) -> None:
        """
        Raises:
            DeviceNotFound: If the device is not registered
            DeviceUnavailable: If the handler rejected the command
        """
        result = await self.registry.handle_command(
            device_id, command.command, command.capability, command.component, command.arguments
        )
        if not result.success:
            raise DeviceUnavailable(result.detail or DEVICE_UNAVAILABLE_DETAIL)

    @staticmethod
    def _device_error(device_id: Optional[str], detail: str) -> Dict[str, Any]:
        return {
            "externalDeviceId": device_id,
            "deviceError": [{
                "errorEnum": DeviceErrorEnum.DEVICE_UNAVAILABLE.value,
                "detail": detail,
            }],
        }

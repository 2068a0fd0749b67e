"""
Device registry

Owns the device handlers keyed by external device id and aggregates their
discovery descriptors and state snapshots.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..errors import DeviceNotFound
from ..models import CommandResult, DeviceDescriptor, DeviceStateSnapshot
from .handlers import CAR_DEFAULTS, DeviceHandler, DeviceType, create_handler
from .state_source import StateSource

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """
    Handlers in registration order

    Re-registering an id replaces its handler but keeps its position.
    """

    def __init__(self,
                 state_source: Optional[StateSource] = None,
                 refresh_timeout: float = 8.0):
        """
        Args:
            state_source: Fixture source handed to handlers that read one
            refresh_timeout: Per-device bound for refresh_many, in seconds
        """
        self.state_source = state_source
        self.refresh_timeout = refresh_timeout
        self._handlers: Dict[str, DeviceHandler] = {}

    @classmethod
    def with_default_devices(cls,
                             state_source: Optional[StateSource] = None,
                             refresh_timeout: float = 8.0) -> "DeviceRegistry":
        registry = cls(state_source=state_source, refresh_timeout=refresh_timeout)
        registry.register_defaults()
        return registry

    def register_defaults(self) -> None:
        """Seed the registry with the default virtual car"""
        self.register(CAR_DEFAULTS.external_device_id, DeviceType.CAR.value, CAR_DEFAULTS)

    def register(self, device_id: str, device_type: str, config: Optional[Any] = None) -> DeviceHandler:
        """
        Construct and register the handler for ``device_type``

        Raises:
            UnsupportedDeviceType: For unknown device kinds
        """
        handler = create_handler(device_type, device_id, config, self.state_source)
        if device_id in self._handlers:
            logger.info(f"Replacing handler for device {device_id}")
        self._handlers[device_id] = handler
        logger.info(f"Registered {device_type} device {device_id}")
        return handler

    def get_handler(self, device_id: str) -> DeviceHandler:
        handler = self._handlers.get(device_id)
        if handler is None:
            raise DeviceNotFound(f"Device handler not found for device: {device_id}")
        return handler

    @property
    def device_ids(self) -> List[str]:
        return list(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def list_descriptors(self) -> List[DeviceDescriptor]:
        return [handler.describe() for handler in self._handlers.values()]

    async def refresh_state(self, device_id: str) -> DeviceStateSnapshot:
        """
        Fetch the current state of one device

        Raises:
            DeviceNotFound: If no handler is registered under ``device_id``
        """
        handler = self.get_handler(device_id)
        states = await handler.refresh_state()
        return DeviceStateSnapshot(external_device_id=device_id, device_cookie={}, states=states)

    async def refresh_many(self, device_ids: Iterable[str]) -> List[DeviceStateSnapshot]:
        """
        Refresh several devices concurrently

        Each refresh is bounded by ``refresh_timeout``. Devices that fail or
        time out are logged and left out; the rest keep request order.
        """
        device_ids = list(device_ids)
        results = await asyncio.gather(
            *(asyncio.wait_for(self.refresh_state(device_id), timeout=self.refresh_timeout)
              for device_id in device_ids),
            return_exceptions=True
        )

        snapshots = []
        for device_id, result in zip(device_ids, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(f"State refresh timed out for device {device_id}")
            elif isinstance(result, BaseException):
                logger.warning(f"State refresh failed for device {device_id}: {result}")
            else:
                snapshots.append(result)
        return snapshots

    async def handle_command(self,
                             device_id: str,
                             command: str,
                             capability: str,
                             component: str = "main",
                             arguments: Optional[List[Any]] = None) -> CommandResult:
        handler = self.get_handler(device_id)
        return await handler.handle_command(command, capability, component, arguments)

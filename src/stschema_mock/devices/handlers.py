"""
Device handlers

Each supported device kind is a tag in DeviceType and a class satisfying
the DeviceHandler protocol (describe, refresh_state, handle_command).
HANDLER_TYPES maps every tag to its class and is checked for completeness
when the module is imported.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..errors import UnsupportedDeviceType
from ..models import (
    CommandResult,
    DeviceContext,
    DeviceDescriptor,
    DeviceStateEntry,
    ManufacturerInfo,
)
from .state_source import StateSource, StaticStateSource

logger = logging.getLogger(__name__)


class DeviceType(str, Enum):
    CAR = "car"
    SWITCH = "switch"


class DeviceConfig(BaseModel):
    """Per-device overrides; unset fields fall back to the device kind's defaults"""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    external_device_id: Optional[str] = Field(default=None, alias="externalDeviceId")
    friendly_name: Optional[str] = Field(default=None, alias="friendlyName")
    manufacturer_name: Optional[str] = Field(default=None, alias="manufacturerName")
    model_name: Optional[str] = Field(default=None, alias="modelName")
    hw_version: Optional[str] = Field(default=None, alias="hwVersion")
    sw_version: Optional[str] = Field(default=None, alias="swVersion")
    categories: Optional[List[str]] = None
    device_handler_type: Optional[str] = Field(default=None, alias="deviceHandlerType")


CAR_DEFAULTS = DeviceConfig(
    external_device_id="partner-device-id-1",
    friendly_name="Rend",
    manufacturer_name="Virtual Hyundai",
    model_name="Test Model",
    hw_version="3",
    sw_version="1.0",
    categories=["Car"],
    device_handler_type="4e8bdf64-c46a-4c9c-8d01-3929d9c923ed",
)

SWITCH_DEFAULTS = DeviceConfig(
    friendly_name="Virtual Switch",
    manufacturer_name="Virtual Manufacturer",
    model_name="Test Switch",
    hw_version="1",
    sw_version="1.0",
    categories=["Switch"],
    device_handler_type="c2c-switch",
)

DEFAULT_CAR_STATES: List[Dict[str, Any]] = [
    {"component": "main", "capability": "st.healthCheck", "attribute": "healthStatus", "value": "online"},
    {"component": "main", "capability": "st.battery", "attribute": "battery", "value": 80, "unit": "%"},
    {"component": "main", "capability": "st.lock", "attribute": "lock", "value": "locked"},
    {"component": "main", "capability": "st.temperatureMeasurement", "attribute": "temperature",
     "value": 21, "unit": "C"},
]


class DeviceHandler(Protocol):
    """Capabilities every device kind provides"""

    external_device_id: str

    def describe(self) -> DeviceDescriptor:
        ...

    async def refresh_state(self) -> List[DeviceStateEntry]:
        ...

    async def handle_command(self,
                             command: str,
                             capability: str,
                             component: str = "main",
                             arguments: Optional[List[Any]] = None) -> CommandResult:
        ...


def _merge_config(config: Optional[DeviceConfig], defaults: DeviceConfig) -> DeviceConfig:
    overrides = config.model_dump(exclude_none=True) if config else {}
    return defaults.model_copy(update=overrides)


def _descriptor(device_id: str, config: DeviceConfig) -> DeviceDescriptor:
    return DeviceDescriptor(
        external_device_id=device_id,
        friendly_name=config.friendly_name,
        manufacturer_info=ManufacturerInfo(
            manufacturer_name=config.manufacturer_name,
            model_name=config.model_name,
            hw_version=config.hw_version,
            sw_version=config.sw_version,
        ),
        device_context=DeviceContext(categories=list(config.categories or [])),
        device_handler_type=config.device_handler_type,
    )


class CarDeviceHandler:
    """
    Virtual car whose state comes from a fixture source.

    States are fetched again on every refresh; nothing is cached.
    Commands are acknowledged without changing state.
    """

    def __init__(self, device_id: str, config: Optional[DeviceConfig] = None,
                 state_source: Optional[StateSource] = None):
        self.external_device_id = device_id
        self.config = _merge_config(config, CAR_DEFAULTS)
        self.state_source = state_source or StaticStateSource(DEFAULT_CAR_STATES)

    def describe(self) -> DeviceDescriptor:
        return _descriptor(self.external_device_id, self.config)

    async def refresh_state(self) -> List[DeviceStateEntry]:
        raw_states = await self.state_source.load_states(self.external_device_id)
        return [DeviceStateEntry.model_validate(entry) for entry in raw_states]

    async def handle_command(self,
                             command: str,
                             capability: str,
                             component: str = "main",
                             arguments: Optional[List[Any]] = None) -> CommandResult:
        logger.info(f"Handling command: {command} for capability: {capability} "
                    f"on device: {self.external_device_id}")
        return CommandResult(success=True)


class SwitchDeviceHandler:
    """On/off switch with in-memory state that commands mutate"""

    def __init__(self, device_id: str, config: Optional[DeviceConfig] = None,
                 state_source: Optional[StateSource] = None):
        self.external_device_id = device_id
        self.config = _merge_config(config, SWITCH_DEFAULTS)
        self.switch = "off"

    def describe(self) -> DeviceDescriptor:
        return _descriptor(self.external_device_id, self.config)

    async def refresh_state(self) -> List[DeviceStateEntry]:
        return [
            DeviceStateEntry(capability="st.switch", attribute="switch", value=self.switch),
            DeviceStateEntry(capability="st.healthCheck", attribute="healthStatus", value="online"),
        ]

    async def handle_command(self,
                             command: str,
                             capability: str,
                             component: str = "main",
                             arguments: Optional[List[Any]] = None) -> CommandResult:
        if capability != "st.switch" or command not in ("on", "off"):
            return CommandResult(success=False, detail=f"Unsupported command {capability}.{command}")

        self.switch = command
        logger.info(f"Switch {self.external_device_id} turned {command}")
        return CommandResult(success=True, states=await self.refresh_state())


HandlerFactory = Callable[[str, Optional[DeviceConfig], Optional[StateSource]], DeviceHandler]

HANDLER_TYPES: Dict[DeviceType, HandlerFactory] = {
    DeviceType.CAR: CarDeviceHandler,
    DeviceType.SWITCH: SwitchDeviceHandler,
}

_missing = set(DeviceType) - set(HANDLER_TYPES)
if _missing:
    raise RuntimeError(f"No handler registered for device types: {sorted(t.value for t in _missing)}")


def create_handler(device_type: str,
                   device_id: str,
                   config: Optional[Any] = None,
                   state_source: Optional[StateSource] = None) -> DeviceHandler:
    """
    Build the handler variant for ``device_type``

    Args:
        device_type: One of the DeviceType values
        device_id: External device id
        config: DeviceConfig or a mapping with camelCase or snake_case keys
        state_source: Fixture source for kinds that read one

    Raises:
        UnsupportedDeviceType: For unknown kinds
    """
    try:
        kind = DeviceType(device_type)
    except ValueError:
        raise UnsupportedDeviceType(f"Unsupported device type: {device_type}")

    if config is not None and not isinstance(config, DeviceConfig):
        config = DeviceConfig.model_validate(config)

    return HANDLER_TYPES[kind](device_id, config, state_source)

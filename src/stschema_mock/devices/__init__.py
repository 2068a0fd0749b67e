"""
Device abstraction layer: handler variants, state sources and the registry
"""

from .handlers import (
    DeviceType,
    DeviceConfig,
    DeviceHandler,
    CarDeviceHandler,
    SwitchDeviceHandler,
    create_handler,
)
from .registry import DeviceRegistry
from .state_source import (
    StateSource,
    StateSourceError,
    StaticStateSource,
    FileStateSource,
    HttpStateSource,
    create_state_source,
)

__all__ = [
    'DeviceType',
    'DeviceConfig',
    'DeviceHandler',
    'CarDeviceHandler',
    'SwitchDeviceHandler',
    'create_handler',
    'DeviceRegistry',
    'StateSource',
    'StateSourceError',
    'StaticStateSource',
    'FileStateSource',
    'HttpStateSource',
    'create_state_source'
]

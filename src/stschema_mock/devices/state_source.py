"""
Pluggable sources of device state fixtures

A fixture document is either a list of state entries, shared by every
device reading from the source, or an object mapping externalDeviceId to
such a list.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx

logger = logging.getLogger(__name__)

StateDocument = Union[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]


class StateSourceError(Exception):
    """A state fixture could not be loaded"""
    pass


class StateSource(Protocol):
    async def load_states(self, device_id: str) -> List[Dict[str, Any]]:
        ...


def _select_states(document: Any, device_id: str) -> List[Dict[str, Any]]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict):
        states = document.get(device_id)
        if states is None:
            raise StateSourceError(f"No states for device {device_id}")
        if not isinstance(states, list):
            raise StateSourceError(f"States for device {device_id} must be a list")
        return states
    raise StateSourceError(f"Unexpected state document type: {type(document).__name__}")


class StaticStateSource:
    """States held in memory, returned as fresh copies on every load"""

    def __init__(self, document: Optional[StateDocument] = None):
        self.document = document if document is not None else []

    async def load_states(self, device_id: str) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in _select_states(self.document, device_id)]


class FileStateSource:
    """JSON fixture file, re-read on every load"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def load_states(self, device_id: str) -> List[Dict[str, Any]]:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            document = json.loads(text)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading device states from {self.path}: {e}")
            raise StateSourceError(f"Cannot read {self.path}: {e}")
        return _select_states(document, device_id)


class HttpStateSource:
    """Remote JSON fixture fetched on every load"""

    def __init__(self,
                 url: str,
                 timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def load_states(self, device_id: str) -> List[Dict[str, Any]]:
        logger.debug(f"Loading states for {device_id} from {self.url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                document = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error loading device states from {self.url}: {e}")
            raise StateSourceError(f"Cannot fetch {self.url}: {e}")
        return _select_states(document, device_id)


def create_state_source(url: Optional[str] = None,
                        file_path: Optional[str] = None,
                        timeout: float = 5.0,
                        default: Optional[StateDocument] = None) -> StateSource:
    """Pick a state source from configuration: URL, then file, then static"""
    if url:
        return HttpStateSource(url, timeout=timeout)
    if file_path:
        return FileStateSource(file_path)
    return StaticStateSource(default)

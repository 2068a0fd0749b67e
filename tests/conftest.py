"""
Test configuration and fixtures for the ST-Schema mock partner tests
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stschema_mock.http_config import Config, OAuthConfig, MonitoringConfig
from stschema_mock.http_server import SchemaMockHTTPServer
from stschema_mock.auth.token_manager import TokenManager
from stschema_mock.auth.token_store import TokenStore
from stschema_mock.auth.oauth_provider import AuthorizationCodeFlow
from stschema_mock.auth.callback_bridge import CallbackAccessBridge
from stschema_mock.devices.handlers import DEFAULT_CAR_STATES
from stschema_mock.devices.registry import DeviceRegistry
from stschema_mock.devices.state_source import StaticStateSource

TEST_SECRET = "test-secret-with-enough-entropy-0123456789"
TEST_REDIRECT_URI = "https://partner.example.com/oauth/callback"


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStateSource:
    """State source that fails for selected devices"""

    def __init__(self, failing: List[str], states: Optional[List[Dict[str, Any]]] = None):
        self.failing = set(failing)
        self.states = states if states is not None else DEFAULT_CAR_STATES

    async def load_states(self, device_id: str) -> List[Dict[str, Any]]:
        if device_id in self.failing:
            raise ConnectionError(f"fixture host unreachable for {device_id}")
        return [dict(entry) for entry in self.states]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def test_config():
    """Create test configuration."""
    return Config(
        oauth=OAuthConfig(jwt_secret=TEST_SECRET),
        monitoring=MonitoringConfig(log_level="DEBUG"),
        environment="testing",
        debug=True
    )


@pytest.fixture
def token_manager():
    return TokenManager(TEST_SECRET)


@pytest.fixture
def token_store(fake_clock):
    return TokenStore(code_ttl=600, clock=fake_clock)


@pytest.fixture
def oauth_flow(token_manager, token_store):
    return AuthorizationCodeFlow(token_manager=token_manager, token_store=token_store)


@pytest.fixture
def registry():
    """Registry with the default car reading static fixtures."""
    return DeviceRegistry.with_default_devices(state_source=StaticStateSource(DEFAULT_CAR_STATES))


@pytest.fixture
def bridge():
    return CallbackAccessBridge(timeout=2.0)


@pytest.fixture
def test_server(test_config, registry):
    """Create test HTTP server."""
    return SchemaMockHTTPServer(test_config, registry=registry)


@pytest.fixture
def test_client(test_server):
    """Create test client for HTTP server."""
    with TestClient(test_server.app) as client:
        yield client


def make_envelope(interaction_type: Optional[str], request_id: str = "r1", **payload) -> Dict[str, Any]:
    """Build a partner schema request envelope."""
    headers = {"schema": "st-schema", "version": "1.0", "requestId": request_id}
    if interaction_type is not None:
        headers["interactionType"] = interaction_type
    return {"headers": headers, **payload}


@pytest.fixture(autouse=True)
def reset_test_environment():
    """Reset environment variables read by Config.from_env."""
    test_env_vars = {
        "ENVIRONMENT": "testing",
        "LOG_LEVEL": "DEBUG",
        "JWT_SECRET": TEST_SECRET,
    }

    original_env = {}
    for key, value in test_env_vars.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    for key, original_value in original_env.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value

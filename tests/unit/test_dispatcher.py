"""
Unit tests for the interaction dispatcher
"""

import asyncio

import httpx
import pytest

from stschema_mock.auth.callback_bridge import CallbackAccessBridge
from stschema_mock.devices.registry import DeviceRegistry
from stschema_mock.interaction.dispatcher import InteractionDispatcher
from tests.conftest import FailingStateSource, make_envelope

PARTNER_TOKEN_URL = "https://partner.example.com/oauth/token"


class ExplodingRegistry(DeviceRegistry):
    def list_descriptors(self):
        raise RuntimeError("descriptor table corrupted at /var/lib/devices")


def _partner_transport(status_code=200, payload=None):
    payload = payload if payload is not None else {"access_token": "at", "refresh_token": "rt", "expires_in": 60}
    return httpx.MockTransport(lambda request: httpx.Response(status_code, json=payload))


@pytest.fixture
def dispatcher(registry):
    bridge = CallbackAccessBridge(transport=_partner_transport())
    return InteractionDispatcher(registry, bridge)


class TestEnvelopeHandling:

    @pytest.mark.asyncio
    async def test_missing_interaction_type(self, dispatcher):
        result = await dispatcher.dispatch(make_envelope(None))

        assert result.status_code == 400
        assert result.body == {"error": "missing interactionType"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, [], "text", {"headers": "nope"}])
    async def test_malformed_bodies(self, dispatcher, body):
        result = await dispatcher.dispatch(body)

        assert result.status_code == 400
        assert result.body == {"error": "missing interactionType"}

    @pytest.mark.asyncio
    async def test_unsupported_interaction_type(self, dispatcher):
        result = await dispatcher.dispatch(make_envelope("bogus", request_id="r2"))

        assert result.status_code == 400
        assert result.body == {"error": "unsupported interactionType: bogus"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interaction_type", [["discoveryRequest"], {"x": 1}, 42, True])
    async def test_non_string_interaction_type(self, dispatcher, interaction_type):
        body = {"headers": {"interactionType": interaction_type, "requestId": "p1"}}

        result = await dispatcher.dispatch(body)

        assert result.status_code == 400
        assert result.body["error"].startswith("unsupported interactionType: ")

    @pytest.mark.asyncio
    async def test_non_string_request_id_is_echoed_as_text(self, dispatcher):
        body = {"headers": {"interactionType": "discoveryRequest", "requestId": 17}}

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert result.body["headers"]["requestId"] == "17"

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_generic_500(self):
        dispatcher = InteractionDispatcher(ExplodingRegistry(), CallbackAccessBridge())

        result = await dispatcher.dispatch(make_envelope("discoveryRequest", request_id="r9"))

        assert result.status_code == 500
        assert result.body["error"] == "Internal server error"
        assert result.body["headers"]["requestId"] == "r9"
        assert "corrupted" not in str(result.body)

    def test_supported_interaction_types(self, dispatcher):
        assert set(dispatcher.supported_interaction_types) == {
            "discoveryRequest", "grantCallbackAccess", "stateRefreshRequest", "commandRequest"
        }


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_lists_registered_devices(self, dispatcher):
        result = await dispatcher.dispatch(make_envelope("discoveryRequest", request_id="r1"))

        assert result.status_code == 200
        assert result.body["headers"] == {
            "schema": "st-schema",
            "version": "1.0",
            "interactionType": "discoveryResponse",
            "requestId": "r1",
        }
        assert [d["externalDeviceId"] for d in result.body["devices"]] == ["partner-device-id-1"]
        assert result.body["devices"][0]["friendlyName"] == "Rend"

    @pytest.mark.asyncio
    async def test_stable_across_calls(self, dispatcher):
        first = await dispatcher.dispatch(make_envelope("discoveryRequest", request_id="a"))
        second = await dispatcher.dispatch(make_envelope("discoveryRequest", request_id="a"))

        assert first.body == second.body


class TestGrantCallbackAccess:

    @pytest.mark.asyncio
    async def test_returns_access_token_response(self, dispatcher):
        body = make_envelope(
            "grantCallbackAccess",
            request_id="g1",
            callbackAuthentication={"grantType": "authorization_code", "code": "c", "clientId": "id",
                                    "clientSecret": "secret"},
            callbackUrls={"oauthToken": PARTNER_TOKEN_URL, "stateCallback": "https://partner.example.com/state"},
        )

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert result.body["headers"]["interactionType"] == "accessTokenResponse"
        assert result.body["headers"]["requestId"] == "g1"
        assert result.body["callbackAuthentication"]["accessToken"] == "at"
        assert result.body["callbackAuthentication"]["expiresIn"] == 60

    @pytest.mark.asyncio
    async def test_missing_callback_url_is_client_error(self, dispatcher):
        body = make_envelope("grantCallbackAccess", callbackAuthentication={"code": "c"})

        result = await dispatcher.dispatch(body)

        assert result.status_code == 400
        assert result.body["error"] == "missing_callback_url"

    @pytest.mark.asyncio
    async def test_partner_failure_is_generic_500(self, registry):
        bridge = CallbackAccessBridge(transport=_partner_transport(400, {"error": "bad_code"}))
        dispatcher = InteractionDispatcher(registry, bridge)
        body = make_envelope("grantCallbackAccess", request_id="g2",
                             callbackAuthentication={"code": "c", "callbackUrls": {"oauthToken": PARTNER_TOKEN_URL}})

        result = await dispatcher.dispatch(body)

        assert result.status_code == 500
        assert result.body["error"] == "Internal server error"
        assert result.body["headers"]["interactionType"] == "accessTokenResponse"
        assert "bad_code" not in str(result.body)


class TestStateRefresh:

    @pytest.mark.asyncio
    async def test_refreshes_requested_devices(self, dispatcher):
        body = make_envelope("stateRefreshRequest", request_id="s1",
                             devices=[{"externalDeviceId": "partner-device-id-1"}])

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert result.body["headers"]["interactionType"] == "stateRefreshResponse"
        states = result.body["deviceState"]
        assert [s["externalDeviceId"] for s in states] == ["partner-device-id-1"]
        assert {"component": "main", "capability": "st.battery", "attribute": "battery",
                "value": 80, "unit": "%"} in states[0]["states"]

    @pytest.mark.asyncio
    async def test_without_device_list_refreshes_all(self, dispatcher, registry):
        registry.register("sw-1", "switch")

        result = await dispatcher.dispatch(make_envelope("stateRefreshRequest"))

        assert [s["externalDeviceId"] for s in result.body["deviceState"]] == ["partner-device-id-1", "sw-1"]

    @pytest.mark.asyncio
    async def test_empty_device_list(self, dispatcher):
        result = await dispatcher.dispatch(make_envelope("stateRefreshRequest", devices=[]))

        assert result.status_code == 200
        assert result.body["deviceState"] == []

    @pytest.mark.asyncio
    async def test_partial_failure_still_succeeds(self):
        registry = DeviceRegistry(state_source=FailingStateSource(failing=["broken"]))
        registry.register("ok", "car")
        registry.register("broken", "car")
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge())
        body = make_envelope("stateRefreshRequest", devices=[
            {"externalDeviceId": "broken"}, {"externalDeviceId": "ghost"}, {"externalDeviceId": "ok"}
        ])

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert [s["externalDeviceId"] for s in result.body["deviceState"]] == ["ok"]


class TestCommand:

    @pytest.mark.asyncio
    async def test_every_command_reports_unavailable(self, dispatcher):
        body = make_envelope("commandRequest", request_id="c1", devices=[{
            "externalDeviceId": "partner-device-id-1",
            "deviceCookie": {},
            "commands": [{"component": "main", "capability": "st.lock", "command": "unlock", "arguments": []}],
        }])

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert result.body["headers"]["interactionType"] == "commandResponse"
        assert result.body["deviceState"] == [{
            "externalDeviceId": "partner-device-id-1",
            "deviceError": [{"errorEnum": "DEVICE-UNAVAILABLE", "detail": "Device is unavailable"}],
        }]

    @pytest.mark.asyncio
    async def test_delegate_mode_runs_handler(self, registry):
        registry.register("sw-1", "switch")
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), command_mode="delegate")
        body = make_envelope("commandRequest", devices=[{
            "externalDeviceId": "sw-1",
            "deviceCookie": {"lastcookie": "x"},
            "commands": [{"capability": "st.switch", "command": "on"}],
        }])

        result = await dispatcher.dispatch(body)

        device_state = result.body["deviceState"][0]
        assert device_state["externalDeviceId"] == "sw-1"
        assert device_state["deviceCookie"] == {"lastcookie": "x"}
        assert {"component": "main", "capability": "st.switch", "attribute": "switch", "value": "on"} \
            in device_state["states"]

    @pytest.mark.asyncio
    async def test_delegate_mode_rejected_command(self, registry):
        registry.register("sw-1", "switch")
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), command_mode="delegate")
        body = make_envelope("commandRequest", devices=[
            {"externalDeviceId": "sw-1", "commands": [{"capability": "st.colorControl", "command": "setHue"}]},
            {"externalDeviceId": "ghost", "commands": [{"capability": "st.switch", "command": "on"}]},
        ])

        result = await dispatcher.dispatch(body)

        first, second = result.body["deviceState"]
        assert first["deviceError"][0]["errorEnum"] == "DEVICE-UNAVAILABLE"
        assert "st.colorControl" in first["deviceError"][0]["detail"]
        assert second["externalDeviceId"] == "ghost"
        assert second["deviceError"][0]["errorEnum"] == "DEVICE-UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_delegate_mode_malformed_command_fails_only_its_device(self, registry):
        registry.register("sw-1", "switch")
        registry.register("sw-2", "switch")
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), command_mode="delegate")
        body = make_envelope("commandRequest", devices=[
            {"externalDeviceId": "sw-1", "commands": [{"component": "main"}]},
            {"externalDeviceId": "sw-2", "commands": [{"capability": "st.switch", "command": "on"}]},
        ])

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        first, second = result.body["deviceState"]
        assert first == {
            "externalDeviceId": "sw-1",
            "deviceError": [{"errorEnum": "DEVICE-UNAVAILABLE", "detail": "Malformed command"}],
        }
        assert second["externalDeviceId"] == "sw-2"
        assert {"component": "main", "capability": "st.switch", "attribute": "switch", "value": "on"} \
            in second["states"]

    @pytest.mark.asyncio
    async def test_delegate_mode_device_without_id(self, registry):
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), command_mode="delegate")
        body = make_envelope("commandRequest", devices=[
            {"commands": [{"capability": "st.switch", "command": "on"}]},
        ])

        result = await dispatcher.dispatch(body)

        assert result.status_code == 200
        assert result.body["deviceState"][0]["deviceError"][0]["errorEnum"] == "DEVICE-UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_command_delay_is_applied(self, registry):
        dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), command_delay_seconds=0.2)
        body = make_envelope("commandRequest", request_id="c2", devices=[
            {"externalDeviceId": "partner-device-id-1", "commands": []},
        ])

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await dispatcher.dispatch(body)
        elapsed = loop.time() - started

        assert elapsed >= 0.19
        assert result.status_code == 200
        assert result.body["headers"]["requestId"] == "c2"
        assert result.body["deviceState"][0]["deviceError"][0]["errorEnum"] == "DEVICE-UNAVAILABLE"


class TestPartnerToken:

    @pytest.fixture
    def guarded(self, registry, oauth_flow):
        return InteractionDispatcher(registry, CallbackAccessBridge(), oauth_flow=oauth_flow,
                                     require_partner_token=True)

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self, guarded):
        result = await guarded.dispatch(make_envelope("discoveryRequest"))

        assert result.status_code == 401
        assert result.body == {"error": "missing_token"}

    @pytest.mark.asyncio
    async def test_valid_token_accepted(self, guarded, token_manager):
        token = token_manager.create_access_token(subject="partner").access_token

        result = await guarded.dispatch(
            make_envelope("discoveryRequest", authentication={"tokenType": "Bearer", "token": token})
        )

        assert result.status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_token_rejected(self, guarded):
        result = await guarded.dispatch(
            make_envelope("discoveryRequest", authentication={"tokenType": "Bearer", "token": "forged"})
        )

        assert result.status_code == 401
        assert result.body == {"error": "invalid_token"}

    def test_requires_flow(self, registry):
        with pytest.raises(ValueError):
            InteractionDispatcher(registry, CallbackAccessBridge(), require_partner_token=True)


@pytest.mark.asyncio
async def test_interactions_are_audited(registry):
    class RecordingAudit:
        def __init__(self):
            self.calls = []

        def log_interaction(self, interaction_type, request_id, status_code):
            self.calls.append((interaction_type, request_id, status_code))

    audit = RecordingAudit()
    dispatcher = InteractionDispatcher(registry, CallbackAccessBridge(), audit_logger=audit)

    await dispatcher.dispatch(make_envelope("discoveryRequest", request_id="r1"))
    await dispatcher.dispatch(make_envelope("bogus", request_id="r2"))

    assert audit.calls == [("discoveryRequest", "r1", 200), ("bogus", "r2", 400)]

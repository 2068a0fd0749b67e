from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

SCHEMA_NAME = "st-schema"
SCHEMA_VERSION = "1.0"


class WireModel(BaseModel):
    """Base for st-schema payloads: snake_case attributes, camelCase on the wire"""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InteractionType(str, Enum):
    DISCOVERY_REQUEST = "discoveryRequest"
    DISCOVERY_RESPONSE = "discoveryResponse"
    GRANT_CALLBACK_ACCESS = "grantCallbackAccess"
    ACCESS_TOKEN_RESPONSE = "accessTokenResponse"
    STATE_REFRESH_REQUEST = "stateRefreshRequest"
    STATE_REFRESH_RESPONSE = "stateRefreshResponse"
    COMMAND_REQUEST = "commandRequest"
    COMMAND_RESPONSE = "commandResponse"


class DeviceErrorEnum(str, Enum):
    DEVICE_UNAVAILABLE = "DEVICE-UNAVAILABLE"


# Devices

class ManufacturerInfo(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    manufacturer_name: str = Field(alias="manufacturerName")
    model_name: str = Field(alias="modelName")
    hw_version: Optional[str] = Field(default=None, alias="hwVersion")
    sw_version: Optional[str] = Field(default=None, alias="swVersion")


class DeviceContext(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    categories: List[str] = []


class DeviceDescriptor(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    external_device_id: str = Field(alias="externalDeviceId")
    friendly_name: str = Field(alias="friendlyName")
    manufacturer_info: ManufacturerInfo = Field(alias="manufacturerInfo")
    device_context: DeviceContext = Field(default_factory=DeviceContext, alias="deviceContext")
    device_handler_type: str = Field(alias="deviceHandlerType")


class DeviceStateEntry(WireModel):
    component: str = "main"
    capability: str
    attribute: str
    value: Any = None
    unit: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.component, self.capability, self.attribute)


class DeviceStateSnapshot(WireModel):
    """Current attribute table of one device as sent in stateRefreshResponse"""

    external_device_id: str = Field(alias="externalDeviceId")
    device_cookie: Dict[str, Any] = Field(default_factory=dict, alias="deviceCookie")
    states: List[DeviceStateEntry] = []

    @model_validator(mode="after")
    def check_unique_attributes(self) -> "DeviceStateSnapshot":
        seen = set()
        for entry in self.states:
            if entry.key in seen:
                raise ValueError(
                    f"duplicate state {'/'.join(entry.key)} for device {self.external_device_id}"
                )
            seen.add(entry.key)
        return self


class DeviceCommand(WireModel):
    component: str = "main"
    capability: str
    command: str
    arguments: List[Any] = []


class CommandResult(WireModel):
    success: bool = True
    detail: Optional[str] = None
    states: List[DeviceStateEntry] = []


# Envelope

class EnvelopeHeaders(WireModel):
    schema_name: str = Field(default=SCHEMA_NAME, alias="schema")
    version: str = SCHEMA_VERSION
    interaction_type: str = Field(alias="interactionType")
    request_id: Optional[str] = Field(default=None, alias="requestId")


class CallbackUrls(WireModel):
    oauth_token: Optional[str] = Field(default=None, alias="oauthToken")
    state_callback: Optional[str] = Field(default=None, alias="stateCallback")


class CallbackAuthentication(WireModel):
    """Partner credentials handed to us for a single token exchange"""

    grant_type: Optional[str] = Field(default=None, alias="grantType")
    scope: Optional[str] = None
    code: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_secret: Optional[str] = Field(default=None, alias="clientSecret")
    callback_urls: CallbackUrls = Field(default_factory=CallbackUrls, alias="callbackUrls")


# OAuth

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600


class IdentityClaims(BaseModel):
    sub: str
    name: str
    email: str


class LoginChallenge(BaseModel):
    """Hidden form fields the login page must post back to /authorize"""
    action: str = "/authorize"
    method: str = "POST"
    client_id: Optional[str] = None
    redirect_uri: str
    state: str = ""


def response_interaction_type(request_type: str) -> str:
    """Map a request interactionType to the one used on its response"""
    if request_type == InteractionType.GRANT_CALLBACK_ACCESS.value:
        return InteractionType.ACCESS_TOKEN_RESPONSE.value
    if request_type.endswith("Request"):
        return request_type[: -len("Request")] + "Response"
    return request_type

"""
Typed views of Keystone and Nova payloads.

Responses are parsed into these models as soon as they come off the wire; callers
never see raw dicts from the provider.
"""
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CatalogEndpoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    interface: str
    region: Optional[str] = None
    region_id: Optional[str] = None


class CatalogService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    name: Optional[str] = None
    endpoints: List[CatalogEndpoint] = []


class KeystoneToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    expires_at: str
    catalog: List[CatalogService] = []


class KeystoneTokenEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: KeystoneToken


class AuthToken(BaseModel):
    """Cached result of one token exchange for a (provider, project scope) pair."""
    token: str
    expires_at: float  # epoch seconds
    catalog: List[CatalogService] = []

    def find_endpoint(self, service_type: str, region: str, interface: str = "public") -> Optional[CatalogEndpoint]:
        for service in self.catalog:
            if service.type != service_type:
                continue
            for endpoint in service.endpoints:
                if endpoint.interface == interface and region in (endpoint.region, endpoint.region_id):
                    return endpoint
        return None


class KeystoneProject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    enabled: bool = True


class KeystoneProjectList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    projects: List[KeystoneProject] = []


# Nova OS-EXT-STS:power_state codes
POWER_STATES = {
    0: "NOSTATE",
    1: "RUNNING",
    3: "PAUSED",
    4: "SHUTDOWN",
    6: "CRASHED",
    7: "SUSPENDED",
}


class ServerAddress(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    addr: Optional[str] = None
    version: Optional[int] = None
    type: Optional[str] = Field(default=None, alias="OS-EXT-IPS:type")


class Server(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: Optional[str] = None
    status: str = "UNKNOWN"
    power_state: str = Field(default="UNKNOWN", alias="OS-EXT-STS:power_state")
    addresses: Dict[str, List[ServerAddress]] = {}

    @field_validator("power_state", mode="before")
    @classmethod
    def _power_state_name(cls, value):
        if value is None:
            return "UNKNOWN"
        if isinstance(value, int):
            return POWER_STATES.get(value, "UNKNOWN")
        return str(value)

    @field_validator("addresses", mode="before")
    @classmethod
    def _no_addresses(cls, value):
        return value or {}

    @property
    def ip_addresses(self) -> List[str]:
        """Every address of every network, fixed and floating alike."""
        return [
            address.addr
            for network in self.addresses.values()
            for address in network
            if address.addr
        ]


class ServerEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    server: Server


class ServerList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    servers: List[Server] = []


class RemoteConsole(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    protocol: Optional[str] = None
    type: Optional[str] = None


class RemoteConsoleEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    remote_console: RemoteConsole


class ConsoleType(str, Enum):
    NOVNC = "NOVNC"
    VNC = "VNC"
    SERIAL = "SERIAL"
    SPICE = "SPICE"
    RDP = "RDP"
    MKS = "MKS"

    @property
    def remote_console(self) -> Tuple[str, str]:
        """(protocol, type) pair for Nova's remote-consoles API."""
        return _REMOTE_CONSOLE_TYPES[self]

    @property
    def is_browser_vnc(self) -> bool:
        return self in (ConsoleType.NOVNC, ConsoleType.VNC)


_REMOTE_CONSOLE_TYPES = {
    ConsoleType.NOVNC: ("vnc", "novnc"),
    ConsoleType.VNC: ("vnc", "novnc"),
    ConsoleType.SERIAL: ("serial", "serial"),
    ConsoleType.SPICE: ("spice", "spice-html5"),
    ConsoleType.RDP: ("rdp", "rdp-html5"),
    ConsoleType.MKS: ("mks", "webmks"),
}

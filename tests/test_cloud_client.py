import json

import httpx
import pytest

from tests.fakes import COMPUTE_URL
from wiretap.core.errors import EndpointNotFound, NotFoundRemote, RequestFailed
from wiretap.modules.openstack.client import CloudClient, _browser_vnc_url
from wiretap.modules.openstack.schemas import ConsoleType, Server
from wiretap.modules.providers.schemas import ProviderConfig


def test_server_flattens_every_address():
    server = Server.model_validate({
        "id": "srv-1",
        "status": "ACTIVE",
        "OS-EXT-STS:power_state": 1,
        "addresses": {
            "private": [
                {"addr": "10.0.0.5", "version": 4, "OS-EXT-IPS:type": "fixed"},
                {"addr": "172.24.4.9", "version": 4, "OS-EXT-IPS:type": "floating"},
            ],
            "ipv6": [{"addr": "fd00::5", "version": 6}, {"version": 4}],
        },
    })
    assert server.ip_addresses == ["10.0.0.5", "172.24.4.9", "fd00::5"]
    assert server.power_state == "RUNNING"


def test_server_without_addresses_or_power_state():
    server = Server.model_validate({"id": "srv-2", "status": "BUILD", "addresses": None})
    assert server.ip_addresses == []
    assert server.power_state == "UNKNOWN"
    assert Server.model_validate({"id": "srv-3", "OS-EXT-STS:power_state": 4}).power_state == "SHUTDOWN"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("http://c.test/vnc_auto.html?token=a", "https://c.test/vnc_auto.html?token=a&scale=true"),
        ("https://c.test/vnc_auto.html", "https://c.test/vnc_auto.html?scale=true"),
        ("https://c.test/vnc_auto.html?token=a&scale=false", "https://c.test/vnc_auto.html?token=a&scale=false"),
    ],
)
def test_browser_vnc_url(url, expected):
    assert _browser_vnc_url(url) == expected


def test_console_type_mapping():
    assert ConsoleType.NOVNC.remote_console == ("vnc", "novnc")
    assert ConsoleType.VNC.remote_console == ("vnc", "novnc")
    assert ConsoleType.SERIAL.remote_console == ("serial", "serial")
    assert ConsoleType.SPICE.remote_console == ("spice", "spice-html5")
    assert ConsoleType.RDP.remote_console == ("rdp", "rdp-html5")
    assert ConsoleType.MKS.remote_console == ("mks", "webmks")


@pytest.mark.asyncio
async def test_request_uses_public_endpoint_of_region(cloud, openstack, provider):
    openstack.add_server("proj-a", "srv-1")
    servers = await cloud.list_instances_for_project(provider, "workshop-a", "proj-a")

    assert [s.id for s in servers] == ["srv-1"]
    request = openstack.requests[-1]
    assert str(request.url) == f"{COMPUTE_URL}/servers/detail?project_id=proj-a"
    assert request.headers["X-Auth-Token"] == "token-1"
    assert request.headers["OpenStack-API-Version"] == "compute 2.8"


@pytest.mark.asyncio
async def test_missing_region_raises_endpoint_not_found(cloud, provider_row):
    provider = ProviderConfig(**{**provider_row, "region_name": "RegionTwo"})
    with pytest.raises(EndpointNotFound):
        await cloud.request(provider, "/servers/detail")


@pytest.mark.asyncio
async def test_error_status_raises_request_failed(cloud, openstack, provider):
    openstack.forced["/servers/detail"] = 500
    with pytest.raises(RequestFailed) as exc_info:
        await cloud.request(provider, "/servers/detail")
    assert exc_info.value.upstream_status == 500


@pytest.mark.asyncio
async def test_unauthorized_drops_cached_token(cloud, openstack, provider):
    openstack.forced["/servers/detail"] = 401
    with pytest.raises(RequestFailed):
        await cloud.request(provider, "/servers/detail", project_name="workshop-a")
    assert cloud.auth_cache.get_cached(provider, "workshop-a") is None

    del openstack.forced["/servers/detail"]
    await cloud.request(provider, "/servers/detail", project_name="workshop-a")
    assert openstack.auth_calls == 2


@pytest.mark.asyncio
async def test_transport_error_raises_request_failed(openstack, auth_cache, provider, test_settings):
    def flaky(request):
        if request.url.host == "nova.example.test":
            raise httpx.ReadTimeout("timed out", request=request)
        return openstack.handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(flaky))
    auth_cache.http = http
    cloud = CloudClient(http, auth_cache, test_settings)
    with pytest.raises(RequestFailed):
        await cloud.request(provider, "/servers/detail")


@pytest.mark.asyncio
async def test_instance_details_not_found(cloud, provider):
    with pytest.raises(NotFoundRemote):
        await cloud.get_instance_details(provider, "missing", "workshop-a")


@pytest.mark.asyncio
async def test_power_actions(cloud, openstack, provider):
    openstack.add_server("proj-a", "srv-1")
    await cloud.power_on(provider, "srv-1", "workshop-a")
    await cloud.power_off(provider, "srv-1", "workshop-a")
    await cloud.restart(provider, "srv-1", hard=True, project_name="workshop-a")
    await cloud.restart(provider, "srv-1", project_name="workshop-a")
    assert [body for _, body in openstack.actions] == [
        {"os-start": None},
        {"os-stop": None},
        {"reboot": {"type": "HARD"}},
        {"reboot": {"type": "SOFT"}},
    ]


@pytest.mark.asyncio
async def test_console_url_for_novnc_and_serial(cloud, openstack, provider):
    openstack.add_server("proj-a", "srv-1")
    url = await cloud.get_console_url(provider, "srv-1", ConsoleType.NOVNC, "workshop-a")
    assert url == "https://console.example.test/vnc_auto.html?token=abc&scale=true"
    assert json.loads(openstack.requests[-1].content) == {"remote_console": {"protocol": "vnc", "type": "novnc"}}

    openstack.console_url = "ws://console.example.test/serial?token=xyz"
    url = await cloud.get_console_url(provider, "srv-1", ConsoleType.SERIAL, "workshop-a")
    assert url == "ws://console.example.test/serial?token=xyz"


@pytest.mark.asyncio
async def test_project_id_lookup_is_cached(cloud, openstack, provider):
    assert await cloud.get_project_id(provider, "workshop-a") == "proj-a"
    assert await cloud.get_project_id(provider, "workshop-a") == "proj-a"
    assert await cloud.get_project_id(provider, "nope") is None
    project_lists = [r for r in openstack.requests if r.url.path == "/v3/projects"]
    assert len(project_lists) == 2

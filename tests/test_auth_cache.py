from datetime import datetime, timezone

import httpx
import pytest

from wiretap.core.errors import AuthenticationFailed
from wiretap.modules.openstack.auth_cache import ProviderAuthCache, identity_url, proxied
from wiretap.modules.providers.schemas import ProviderConfig

from tests.fakes import IDENTITY_HOST

TOKEN_EXPIRY = datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()


class Clock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_identity_url_appends_version(provider):
    assert identity_url(provider) == f"https://{IDENTITY_HOST}:5000/v3"


def test_proxied_swaps_host_and_keeps_original_header(provider_row):
    provider = ProviderConfig(**{**provider_row, "proxy_through_host": "10.1.2.3"})
    url, headers = proxied(f"https://{IDENTITY_HOST}:5000/v3/auth/tokens", provider)
    assert url == "https://10.1.2.3:5000/v3/auth/tokens"
    assert headers == {"Host": f"{IDENTITY_HOST}:5000"}


def test_proxied_is_noop_without_proxy_host(provider):
    assert proxied("https://nova.example.test/v2.1", provider) == ("https://nova.example.test/v2.1", {})


@pytest.mark.asyncio
async def test_token_reused_until_expiry(http, openstack, provider, test_settings):
    clock = Clock(TOKEN_EXPIRY - 120)
    cache = ProviderAuthCache(http, test_settings, clock=clock)

    first = await cache.acquire(provider, "workshop-a")
    second = await cache.acquire(provider, "workshop-a")
    assert openstack.auth_calls == 1
    assert first.token == second.token == "token-1"
    assert first.expires_at == TOKEN_EXPIRY

    clock.now = TOKEN_EXPIRY + 1
    assert cache.get_cached(provider, "workshop-a") is None
    third = await cache.acquire(provider, "workshop-a")
    assert openstack.auth_calls == 2
    assert third.token == "token-2"


@pytest.mark.asyncio
async def test_scopes_are_cached_separately(http, openstack, provider, test_settings):
    cache = ProviderAuthCache(http, test_settings, clock=Clock(0))
    await cache.acquire(provider, "workshop-a")
    await cache.acquire(provider, "workshop-b")
    await cache.acquire(provider)
    await cache.acquire(provider, provider.project_name)
    assert openstack.auth_calls == 3


@pytest.mark.asyncio
async def test_invalidate_forces_new_exchange(http, openstack, provider, test_settings):
    cache = ProviderAuthCache(http, test_settings, clock=Clock(0))
    await cache.acquire(provider, "workshop-a")
    cache.invalidate(provider, "workshop-a")
    await cache.acquire(provider, "workshop-a")
    assert openstack.auth_calls == 2


@pytest.mark.asyncio
async def test_rejected_credentials_raise_and_cache_nothing(http, openstack, provider, test_settings):
    openstack.auth_status = 401
    cache = ProviderAuthCache(http, test_settings, clock=Clock(0))
    with pytest.raises(AuthenticationFailed):
        await cache.acquire(provider, "workshop-a")
    assert cache.get_cached(provider, "workshop-a") is None

    openstack.auth_status = 201
    auth = await cache.acquire(provider, "workshop-a")
    assert auth.token == "token-2"


@pytest.mark.asyncio
async def test_unreachable_identity_endpoint(provider, test_settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    cache = ProviderAuthCache(httpx.AsyncClient(transport=httpx.MockTransport(refuse)), test_settings)
    with pytest.raises(AuthenticationFailed):
        await cache.acquire(provider)


@pytest.mark.asyncio
async def test_missing_subject_token_header(provider, test_settings):
    def no_header(request):
        return httpx.Response(201, json={"token": {"expires_at": "2030-01-01T00:00:00Z", "catalog": []}})

    cache = ProviderAuthCache(httpx.AsyncClient(transport=httpx.MockTransport(no_header)), test_settings)
    with pytest.raises(AuthenticationFailed):
        await cache.acquire(provider)


@pytest.mark.asyncio
async def test_malformed_identity_body(provider, test_settings):
    def garbage(request):
        return httpx.Response(201, headers={"X-Subject-Token": "t"}, json={"unexpected": True})

    cache = ProviderAuthCache(httpx.AsyncClient(transport=httpx.MockTransport(garbage)), test_settings)
    with pytest.raises(AuthenticationFailed):
        await cache.acquire(provider)


@pytest.mark.asyncio
async def test_password_payload_is_project_scoped(http, openstack, provider, test_settings):
    cache = ProviderAuthCache(http, test_settings, clock=Clock(0))
    await cache.acquire(provider, "workshop-a")
    request = openstack.requests[-1]
    body = httpx.Response(200, content=request.content).json()
    assert body["auth"]["identity"]["password"]["user"]["name"] == "admin"
    assert body["auth"]["scope"]["project"] == {"name": "workshop-a", "domain": {"name": "Default"}}

"""Shared fixtures for the core services."""
from __future__ import annotations

from typing import Any, Dict

import httpx
import pytest

from tests.fakes import IDENTITY_HOST, FakeOpenStack, FakeSupabase
from wiretap.config.settings import Settings
from wiretap.modules.openstack.auth_cache import ProviderAuthCache
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.providers.schemas import ProviderConfig
from wiretap.modules.workshops.schemas import WorkshopResponse


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        supabase_url="http://supabase.test",
        supabase_key="anon",
        session_token_secret="test-session-secret-0123456789abcdef",
        session_ttl_seconds=600,
        sync_concurrency=2,
    )


@pytest.fixture
def openstack() -> FakeOpenStack:
    return FakeOpenStack()


@pytest.fixture
def http(openstack) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(openstack.handler))


@pytest.fixture
def auth_cache(http, test_settings) -> ProviderAuthCache:
    return ProviderAuthCache(http, test_settings)


@pytest.fixture
def cloud(http, auth_cache, test_settings) -> CloudClient:
    return CloudClient(http, auth_cache, test_settings)


@pytest.fixture
def provider_row() -> Dict[str, Any]:
    return {
        "id": "prov-1",
        "name": "openstack-lab",
        "auth_url": f"https://{IDENTITY_HOST}:5000",
        "identity_version": "v3",
        "username": "admin",
        "password": "secret",
        "project_name": "admin",
        "domain_name": "Default",
        "region_name": "RegionOne",
        "enabled": True,
    }


@pytest.fixture
def provider(provider_row) -> ProviderConfig:
    return ProviderConfig(**provider_row)


@pytest.fixture
def workshop_row() -> Dict[str, Any]:
    return {
        "id": "ws-a",
        "name": "Workshop A",
        "provider_id": "prov-1",
        "openstack_project_id": "proj-a",
        "openstack_project_name": "workshop-a",
        "enabled": True,
        "lockout_start": None,
        "lockout_end": None,
    }


@pytest.fixture
def workshop(workshop_row) -> WorkshopResponse:
    return WorkshopResponse(**workshop_row)


@pytest.fixture
def seeded(supabase, provider_row, workshop_row) -> FakeSupabase:
    supabase.tables["providers"] = [dict(provider_row)]
    supabase.tables["workshops"] = [dict(workshop_row)]
    supabase.tables["instances"] = []
    supabase.tables["sessions"] = []
    return supabase

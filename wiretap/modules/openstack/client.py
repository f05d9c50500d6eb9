import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import EndpointNotFound, NotFoundRemote, RequestFailed
from wiretap.modules.openstack.auth_cache import ProviderAuthCache, identity_url, proxied
from wiretap.modules.openstack.schemas import (
    ConsoleType,
    KeystoneProject,
    KeystoneProjectList,
    RemoteConsoleEnvelope,
    Server,
    ServerEnvelope,
    ServerList,
)
from wiretap.modules.providers.schemas import ProviderConfig

logger = logging.getLogger(__name__)


class CloudClient:
    """Authenticated calls against a provider's Nova API.

    Every call resolves the compute endpoint from the cached catalog (public interface,
    provider region), carries the scope's token and runs under the configured timeout.
    Failures surface as EndpointNotFound / RequestFailed; nothing is retried here.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        auth_cache: ProviderAuthCache,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.auth_cache = auth_cache
        self.settings = app_settings or default_settings
        self.clock = clock
        # (provider id, auth url, project name) -> (project id, expires at)
        self._project_ids: Dict[Tuple[str, str, str], Tuple[Optional[str], float]] = {}

    def _region(self, provider: ProviderConfig) -> str:
        return provider.region_name or self.settings.openstack_default_region

    async def request(
        self,
        provider: ProviderConfig,
        path: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        project_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Issue one compute API call and return the decoded JSON body ({} when empty)."""
        auth = await self.auth_cache.acquire(provider, project_name)
        region = self._region(provider)
        endpoint = auth.find_endpoint("compute", region)
        if endpoint is None:
            raise EndpointNotFound(f"Compute endpoint not found for region: {region}")

        url, proxy_headers = proxied(f"{endpoint.url.rstrip('/')}{path}", provider)
        headers = {
            "X-Auth-Token": auth.token,
            "Content-Type": "application/json",
            "OpenStack-API-Version": self.settings.openstack_compute_api_version,
            **proxy_headers,
        }
        try:
            response = await self.http.request(
                method,
                url,
                json=body,
                headers=headers,
                timeout=self.settings.openstack_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise RequestFailed(f"OpenStack API request failed: {method} {path}: {e}")

        if response.status_code == 401:
            # Token revoked or rotated early; next call re-authenticates
            self.auth_cache.invalidate(provider, project_name)
        if response.status_code >= 400:
            raise RequestFailed(
                f"OpenStack API request failed: {method} {path} returned {response.status_code}",
                upstream_status=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RequestFailed(f"OpenStack API returned invalid JSON for {method} {path}: {e}")

    async def list_projects(self, provider: ProviderConfig) -> List[KeystoneProject]:
        """Identity projects visible to the provider's default scope."""
        auth = await self.auth_cache.acquire(provider)
        url, proxy_headers = proxied(f"{identity_url(provider)}/projects", provider)
        try:
            response = await self.http.get(
                url,
                headers={"X-Auth-Token": auth.token, "Content-Type": "application/json", **proxy_headers},
                timeout=self.settings.openstack_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise RequestFailed(f"Listing projects failed: {e}")
        if response.status_code >= 400:
            raise RequestFailed(f"Listing projects returned {response.status_code}", upstream_status=response.status_code)
        try:
            return KeystoneProjectList.model_validate(response.json()).projects
        except ValueError as e:
            raise RequestFailed(f"Malformed project list: {e}")

    async def get_project_id(self, provider: ProviderConfig, project_name: str) -> Optional[str]:
        """Resolve a project name to its id, memoized for openstack_project_id_ttl_seconds."""
        key = (provider.id, provider.auth_url, project_name)
        cached = self._project_ids.get(key)
        if cached and cached[1] > self.clock():
            return cached[0]
        projects = await self.list_projects(provider)
        project_id = next((p.id for p in projects if p.name == project_name), None)
        self._project_ids[key] = (project_id, self.clock() + self.settings.openstack_project_id_ttl_seconds)
        return project_id

    async def list_instances(self, provider: ProviderConfig, project_id: str) -> List[Server]:
        return await self.list_instances_for_project(provider, None, project_id)

    async def list_instances_for_project(
        self, provider: ProviderConfig, project_name: Optional[str], project_id: str
    ) -> List[Server]:
        """Servers of one project, using a token scoped to that project so all of them are visible."""
        data = await self.request(provider, f"/servers/detail?project_id={project_id}", project_name=project_name)
        try:
            return ServerList.model_validate(data).servers
        except ValidationError as e:
            raise RequestFailed(f"Malformed server list for project {project_id}: {e}")

    async def get_instance_details(
        self, provider: ProviderConfig, remote_id: str, project_name: Optional[str] = None
    ) -> Server:
        try:
            data = await self.request(provider, f"/servers/{remote_id}", project_name=project_name)
        except RequestFailed as e:
            if e.upstream_status == 404:
                raise NotFoundRemote(f"Instance {remote_id} not found in OpenStack")
            raise
        try:
            return ServerEnvelope.model_validate(data).server
        except ValidationError as e:
            raise RequestFailed(f"Malformed server payload for {remote_id}: {e}")

    async def _server_action(
        self, provider: ProviderConfig, remote_id: str, action: Dict[str, Any], project_name: Optional[str]
    ) -> None:
        await self.request(provider, f"/servers/{remote_id}/action", "POST", action, project_name=project_name)

    async def power_on(self, provider: ProviderConfig, remote_id: str, project_name: Optional[str] = None) -> None:
        await self._server_action(provider, remote_id, {"os-start": None}, project_name)

    async def power_off(self, provider: ProviderConfig, remote_id: str, project_name: Optional[str] = None) -> None:
        await self._server_action(provider, remote_id, {"os-stop": None}, project_name)

    async def restart(
        self, provider: ProviderConfig, remote_id: str, hard: bool = False, project_name: Optional[str] = None
    ) -> None:
        reboot_type = "HARD" if hard else "SOFT"
        await self._server_action(provider, remote_id, {"reboot": {"type": reboot_type}}, project_name)

    async def get_console_url(
        self,
        provider: ProviderConfig,
        remote_id: str,
        console_type: ConsoleType = ConsoleType.NOVNC,
        project_name: Optional[str] = None,
    ) -> str:
        """Ask Nova for a one-time console URL of the given type."""
        protocol, remote_type = console_type.remote_console
        data = await self.request(
            provider,
            f"/servers/{remote_id}/remote-consoles",
            "POST",
            {"remote_console": {"protocol": protocol, "type": remote_type}},
            project_name=project_name,
        )
        try:
            url = RemoteConsoleEnvelope.model_validate(data).remote_console.url
        except ValidationError as e:
            raise RequestFailed(f"Malformed remote console response for {remote_id}: {e}")
        if console_type.is_browser_vnc:
            url = _browser_vnc_url(url)
        return url


def _browser_vnc_url(url: str) -> str:
    # Console is embedded in an https page; mixed content would be blocked
    if url.startswith("http://"):
        url = "https://" + url[len("http://"):]
    if "scale=" not in url:
        url += ("&" if "?" in url else "?") + "scale=true"
    return url

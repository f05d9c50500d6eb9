import logging
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx
from pydantic import ValidationError

from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import AuthenticationFailed
from wiretap.modules.openstack.schemas import AuthToken, KeystoneTokenEnvelope
from wiretap.modules.providers.schemas import ProviderConfig

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]


def identity_url(provider: ProviderConfig) -> str:
    """Keystone base URL with the identity version appended, e.g. https://keystone:5000/v3"""
    version = provider.identity_version or "v3"
    base = provider.auth_url.rstrip("/")
    return f"{base}/{version}"


def proxied(url: str, provider: ProviderConfig) -> Tuple[str, Dict[str, str]]:
    """Route url through provider.proxy_through_host, keeping the original Host header."""
    if not provider.proxy_through_host:
        return url, {}
    parts = urlsplit(url)
    if not parts.hostname:
        return url, {}
    netloc = provider.proxy_through_host
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc)), {"Host": parts.netloc}


def _parse_expiry(value: str) -> float:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


class ProviderAuthCache:
    """Keystone token + service catalog cache keyed by (provider id, auth url, project scope).

    Entries are replaced wholesale once expired, never patched. Two concurrent misses for the
    same scope may both authenticate; the later write wins, which is harmless.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self.settings = app_settings or default_settings
        self.clock = clock
        self._entries: Dict[CacheKey, AuthToken] = {}

    @staticmethod
    def cache_key(provider: ProviderConfig, project_name: Optional[str] = None) -> CacheKey:
        return (provider.id, provider.auth_url, project_name or provider.project_name)

    def get_cached(self, provider: ProviderConfig, project_name: Optional[str] = None) -> Optional[AuthToken]:
        entry = self._entries.get(self.cache_key(provider, project_name))
        if entry is not None and self.clock() < entry.expires_at:
            return entry
        return None

    def invalidate(self, provider: ProviderConfig, project_name: Optional[str] = None) -> None:
        self._entries.pop(self.cache_key(provider, project_name), None)

    def clear(self) -> None:
        self._entries.clear()

    async def acquire(self, provider: ProviderConfig, project_name: Optional[str] = None) -> AuthToken:
        """Return a live token for the scope, authenticating when missing or expired."""
        cached = self.get_cached(provider, project_name)
        if cached is not None:
            return cached
        scope = project_name or provider.project_name
        auth = await self._authenticate(provider, scope)
        self._entries[self.cache_key(provider, project_name)] = auth
        return auth

    async def _authenticate(self, provider: ProviderConfig, project_name: str) -> AuthToken:
        domain = provider.domain_name or "Default"
        payload = {
            "auth": {
                "identity": {
                    "methods": ["password"],
                    "password": {
                        "user": {
                            "name": provider.username,
                            "password": provider.password,
                            "domain": {"name": domain},
                        }
                    },
                },
                "scope": {
                    "project": {
                        "name": project_name,
                        "domain": {"name": domain},
                    }
                },
            }
        }
        url, proxy_headers = proxied(f"{identity_url(provider)}/auth/tokens", provider)
        logger.debug(f"Authenticating provider {provider.id} for project {project_name}")
        try:
            response = await self.http.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", **proxy_headers},
                timeout=self.settings.openstack_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error(f"OpenStack authentication error for project {project_name}: {e}")
            raise AuthenticationFailed(f"Identity endpoint unreachable for project {project_name}: {e}")

        if response.status_code >= 400:
            logger.error(f"OpenStack authentication for project {project_name} returned {response.status_code}")
            raise AuthenticationFailed(f"Failed to authenticate with OpenStack for project {project_name}")

        token = response.headers.get("x-subject-token")
        if not token:
            raise AuthenticationFailed("Identity response carried no X-Subject-Token header")
        try:
            envelope = KeystoneTokenEnvelope.model_validate(response.json())
            expires_at = _parse_expiry(envelope.token.expires_at)
        except (ValueError, ValidationError) as e:
            raise AuthenticationFailed(f"Malformed identity response: {e}")

        return AuthToken(token=token, expires_at=expires_at, catalog=envelope.token.catalog)

from supabase import Client
from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import NotFoundLocal, WiretapError
from wiretap.core.worker_pool import run_bounded
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.providers.schemas import ProviderConfig, ConnectionTestResponse
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class ProviderService:
    def __init__(self, supabase: Client, cloud: Optional[CloudClient] = None, app_settings: Optional[Settings] = None):
        self.supabase = supabase
        self.cloud = cloud
        self.settings = app_settings or default_settings

    def get_provider(self, provider_id: str) -> ProviderConfig:
        """Get provider (with credentials) by ID"""
        result = self.supabase.table("providers")\
            .select("*")\
            .eq("id", provider_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundLocal(f"Provider {provider_id} not found")
        return ProviderConfig(**result.data[0])

    def list_providers(self, enabled_only: bool = False) -> List[ProviderConfig]:
        query = self.supabase.table("providers").select("*")
        if enabled_only:
            query = query.eq("enabled", True)
        result = query.order("name").execute()
        return [ProviderConfig(**row) for row in (result.data or [])]

    async def test_connection(self, provider: ProviderConfig) -> ConnectionTestResponse:
        """Authenticate and list identity projects. Never raises for provider-side failures."""
        try:
            projects = await self.cloud.list_projects(provider)
            return ConnectionTestResponse(
                provider_id=provider.id,
                success=True,
                message="Connection successful",
                projects=[p.model_dump() for p in projects],
            )
        except WiretapError as e:
            logger.warning(f"Connection test failed for provider {provider.name}: {e.message}")
            return ConnectionTestResponse(provider_id=provider.id, success=False, message=e.message)

    async def check_all(self) -> List[ConnectionTestResponse]:
        """Probe every enabled provider through the bounded worker pool."""
        providers = self.list_providers(enabled_only=True)
        results = await run_bounded(
            providers,
            self.test_connection,
            self.settings.sync_concurrency,
            label=lambda p: f"provider {p.name}",
        )
        return [
            r.value if r.ok else ConnectionTestResponse(provider_id=r.item.id, success=False, message=str(r.error))
            for r in results
        ]

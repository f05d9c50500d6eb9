from fastapi import APIRouter, Depends
from wiretap.core.dependencies import require_super_user
from wiretap.core.runtime import CoreRuntime, get_runtime
from wiretap.database.supabase_client import get_supabase
from wiretap.modules.providers.schemas import ProviderResponse, ConnectionTestResponse
from wiretap.modules.providers.service import ProviderService
from supabase import Client
from typing import Dict, List

router = APIRouter(prefix="/providers", tags=["providers"])


def get_provider_service(
    supabase: Client = Depends(get_supabase),
    runtime: CoreRuntime = Depends(get_runtime),
) -> ProviderService:
    return ProviderService(supabase, runtime.cloud, runtime.settings)


@router.get("", response_model=List[ProviderResponse])
async def list_providers(
    user_data: Dict = Depends(require_super_user),
    service: ProviderService = Depends(get_provider_service)
):
    return service.list_providers()


@router.get("/health", response_model=List[ConnectionTestResponse])
async def check_providers(
    user_data: Dict = Depends(require_super_user),
    service: ProviderService = Depends(get_provider_service)
):
    """Probe every enabled provider"""
    return await service.check_all()


@router.post("/{provider_id}/test", response_model=ConnectionTestResponse)
async def test_provider_connection(
    provider_id: str,
    user_data: Dict = Depends(require_super_user),
    service: ProviderService = Depends(get_provider_service)
):
    return await service.test_connection(service.get_provider(provider_id))

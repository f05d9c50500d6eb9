from fastapi import APIRouter, Depends
from wiretap.core.dependencies import get_current_user_id, is_super_user, require_super_user
from wiretap.core.errors import Forbidden, InvalidRequest
from wiretap.core.runtime import CoreRuntime, get_runtime
from wiretap.database.supabase_client import get_supabase
from wiretap.modules.instances.reconciler import InstanceReconciler
from wiretap.modules.instances.schemas import (
    InstanceCreate, InstanceUpdate, InstanceResponse, IngestRequest, IngestResult,
    SyncResult, SyncAllResult, PowerActionResponse,
)
from wiretap.modules.instances.service import InstanceService
from wiretap.modules.providers.service import ProviderService
from supabase import Client
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["instances"])


def get_instance_service(
    supabase: Client = Depends(get_supabase),
    runtime: CoreRuntime = Depends(get_runtime),
) -> InstanceService:
    return InstanceService(supabase, runtime.cloud)


def get_reconciler(
    supabase: Client = Depends(get_supabase),
    runtime: CoreRuntime = Depends(get_runtime),
) -> InstanceReconciler:
    return runtime.reconciler(supabase)


def check_instance_access(instance: InstanceResponse, user_data: Dict) -> None:
    """Super users reach every instance, everyone else only the ones assigned to them"""
    if is_super_user(user_data) or instance.user_id == user_data["id"]:
        return
    raise Forbidden("You do not have access to this instance")


@router.get("", response_model=List[InstanceResponse])
async def list_instances(
    workshop_id: Optional[str] = None,
    user_data: Dict = Depends(require_super_user),
    service: InstanceService = Depends(get_instance_service)
):
    return service.list_instances(workshop_id=workshop_id)


@router.post("", response_model=InstanceResponse, status_code=201)
async def create_instance(
    instance_data: InstanceCreate,
    user_data: Dict = Depends(require_super_user),
    service: InstanceService = Depends(get_instance_service)
):
    """Register an existing OpenStack server and sync it once"""
    return await service.create_instance(instance_data)


@router.post("/ingest", response_model=IngestResult)
async def ingest_instances(
    ingest_request: IngestRequest,
    user_data: Dict = Depends(require_super_user),
    reconciler: InstanceReconciler = Depends(get_reconciler),
    supabase: Client = Depends(get_supabase)
):
    """
    Adopt OpenStack servers into local instances.
    With instance_ids (project_name required) only those servers are ingested, an empty list ingests nothing.
    Without instance_ids every enabled workshop of the provider is ingested.
    """
    if ingest_request.instance_ids is not None and not ingest_request.project_name:
        raise InvalidRequest("project_name is required when instance_ids is given")
    provider = ProviderService(supabase).get_provider(ingest_request.provider_id)
    if ingest_request.instance_ids is not None:
        return await reconciler.ingest_specific(
            provider,
            ingest_request.project_name,
            ingest_request.instance_ids,
            team_id=ingest_request.team_id,
            user_id=ingest_request.user_id,
        )
    return await reconciler.ingest_provider(provider, team_id=ingest_request.team_id)


@router.post("/sync-all", response_model=SyncAllResult)
async def sync_all_instances(
    user_data: Dict = Depends(require_super_user),
    reconciler: InstanceReconciler = Depends(get_reconciler)
):
    return await reconciler.sync_all()


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(
    instance_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: InstanceService = Depends(get_instance_service)
):
    instance = service.get_instance(instance_id)
    check_instance_access(instance, user_data)
    return instance


@router.patch("/{instance_id}", response_model=InstanceResponse)
async def update_instance(
    instance_id: str,
    instance_data: InstanceUpdate,
    user_data: Dict = Depends(require_super_user),
    service: InstanceService = Depends(get_instance_service)
):
    return service.update_instance(instance_id, instance_data)


@router.delete("/{instance_id}", status_code=204)
async def delete_instance(
    instance_id: str,
    user_data: Dict = Depends(require_super_user),
    service: InstanceService = Depends(get_instance_service),
    runtime: CoreRuntime = Depends(get_runtime),
    supabase: Client = Depends(get_supabase)
):
    """Delete an instance after closing its console sessions"""
    service.get_instance(instance_id)
    closed = runtime.session_broker(supabase).close_all_for_instance(instance_id)
    if closed:
        logger.info(f"Closed {closed} session(s) before deleting instance {instance_id}")
    service.delete_instance(instance_id)
    return None


@router.post("/{instance_id}/sync", response_model=SyncResult)
async def sync_instance(
    instance_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: InstanceService = Depends(get_instance_service),
    reconciler: InstanceReconciler = Depends(get_reconciler)
):
    check_instance_access(service.get_instance(instance_id), user_data)
    return await reconciler.sync(instance_id)


@router.post("/{instance_id}/power-on", response_model=PowerActionResponse)
async def power_on_instance(
    instance_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: InstanceService = Depends(get_instance_service)
):
    check_instance_access(service.get_instance(instance_id), user_data)
    return await service.power_on(instance_id)


@router.post("/{instance_id}/power-off", response_model=PowerActionResponse)
async def power_off_instance(
    instance_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: InstanceService = Depends(get_instance_service)
):
    check_instance_access(service.get_instance(instance_id), user_data)
    return await service.power_off(instance_id)


@router.post("/{instance_id}/restart", response_model=PowerActionResponse)
async def restart_instance(
    instance_id: str,
    hard: bool = False,
    user_data: Dict = Depends(get_current_user_id),
    service: InstanceService = Depends(get_instance_service)
):
    check_instance_access(service.get_instance(instance_id), user_data)
    return await service.restart(instance_id, hard=hard)

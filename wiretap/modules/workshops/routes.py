from fastapi import APIRouter, Depends
from wiretap.core.dependencies import get_current_user_id, require_super_user
from wiretap.core.runtime import CoreRuntime, get_runtime
from wiretap.database.supabase_client import get_supabase
from wiretap.modules.workshops.schemas import (
    WorkshopResponse, LockoutWindowUpdate, LockoutScheduleEntry, LockoutStateResponse
)
from wiretap.modules.workshops.service import WorkshopService
from supabase import Client
from typing import Dict, List, Optional

router = APIRouter(prefix="/workshops", tags=["workshops"])


def get_workshop_service(supabase: Client = Depends(get_supabase)) -> WorkshopService:
    return WorkshopService(supabase)


@router.get("", response_model=List[WorkshopResponse])
async def list_workshops(
    provider_id: Optional[str] = None,
    user_data: Dict = Depends(require_super_user),
    service: WorkshopService = Depends(get_workshop_service)
):
    return service.list_workshops(provider_id=provider_id)


@router.get("/lockout/schedules", response_model=List[LockoutScheduleEntry])
async def get_lockout_schedules(
    user_data: Dict = Depends(require_super_user),
    runtime: CoreRuntime = Depends(get_runtime)
):
    """Workshops with armed lockout timers"""
    return runtime.lockout.get_schedules()


@router.get("/{workshop_id}/lockout", response_model=LockoutStateResponse)
async def get_lockout_state(
    workshop_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: WorkshopService = Depends(get_workshop_service),
    runtime: CoreRuntime = Depends(get_runtime)
):
    workshop = service.get_workshop_by_id(workshop_id)
    return LockoutStateResponse(workshop_id=workshop.id, state=runtime.lockout.evaluate(workshop).value)


@router.put("/{workshop_id}/lockout", response_model=LockoutStateResponse)
async def update_lockout_window(
    workshop_id: str,
    window: LockoutWindowUpdate,
    user_data: Dict = Depends(require_super_user),
    service: WorkshopService = Depends(get_workshop_service),
    runtime: CoreRuntime = Depends(get_runtime)
):
    """Store a new lockout window and rebuild the workshop's timers"""
    service.update_lockout_window(workshop_id, window)
    state = runtime.lockout.reschedule(workshop_id)
    return LockoutStateResponse(workshop_id=workshop_id, state=state.value)


@router.post("/{workshop_id}/lockout/reschedule", response_model=LockoutStateResponse)
async def reschedule_lockout(
    workshop_id: str,
    user_data: Dict = Depends(require_super_user),
    runtime: CoreRuntime = Depends(get_runtime)
):
    state = runtime.lockout.reschedule(workshop_id)
    return LockoutStateResponse(workshop_id=workshop_id, state=state.value)

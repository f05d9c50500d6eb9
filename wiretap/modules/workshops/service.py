from supabase import Client
from wiretap.core.errors import NotFoundLocal
from wiretap.modules.workshops.schemas import WorkshopResponse, LockoutWindowUpdate
from typing import List, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class WorkshopService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_workshop_by_id(self, workshop_id: str) -> WorkshopResponse:
        """Get workshop by ID"""
        result = self.supabase.table("workshops")\
            .select("*")\
            .eq("id", workshop_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundLocal(f"Workshop {workshop_id} not found")
        return WorkshopResponse(**result.data[0])

    def get_workshop_by_project_name(self, project_name: str) -> WorkshopResponse:
        result = self.supabase.table("workshops")\
            .select("*")\
            .eq("openstack_project_name", project_name)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundLocal(f"No workshop found for project {project_name}")
        return WorkshopResponse(**result.data[0])

    def list_workshops(self, provider_id: Optional[str] = None, enabled_only: bool = False) -> List[WorkshopResponse]:
        """List workshops ordered by name, optionally for one provider"""
        query = self.supabase.table("workshops").select("*")
        if provider_id:
            query = query.eq("provider_id", provider_id)
        if enabled_only:
            query = query.eq("enabled", True)
        result = query.order("name").execute()
        return [WorkshopResponse(**workshop) for workshop in (result.data or [])]

    def update_lockout_window(self, workshop_id: str, window: LockoutWindowUpdate) -> WorkshopResponse:
        """Persist the lockout window. Callers reschedule the workshop's timers afterwards."""
        self.get_workshop_by_id(workshop_id)
        update_data = {
            "lockout_start": window.lockout_start.isoformat() if window.lockout_start else None,
            "lockout_end": window.lockout_end.isoformat() if window.lockout_end else None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.supabase.table("workshops")\
            .update(update_data)\
            .eq("id", workshop_id)\
            .execute()
        if result.data:
            return WorkshopResponse(**result.data[0])
        return self.get_workshop_by_id(workshop_id)

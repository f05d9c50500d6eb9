from supabase import Client
from wiretap.core.errors import AlreadyExists, NotFoundLocal, WiretapError
from wiretap.modules.instances.schemas import InstanceCreate, InstanceUpdate, InstanceResponse, PowerActionResponse
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.openstack.schemas import Server
from wiretap.modules.providers.schemas import ProviderConfig
from wiretap.modules.providers.service import ProviderService
from wiretap.modules.workshops.schemas import WorkshopResponse
from wiretap.modules.workshops.service import WorkshopService
from typing import List, Optional, Tuple
import logging
import uuid

logger = logging.getLogger(__name__)

InstanceContext = Tuple[InstanceResponse, WorkshopResponse, ProviderConfig]


def apply_remote_state(supabase: Client, instance_id: str, server: Server) -> dict:
    """Overwrite status, power_state and the whole IP list from the remote server."""
    update_data = {
        "status": server.status,
        "power_state": server.power_state,
        "ip_addresses": server.ip_addresses,
    }
    supabase.table("instances")\
        .update(update_data)\
        .eq("id", instance_id)\
        .execute()
    return update_data


class InstanceService:
    def __init__(self, supabase: Client, cloud: Optional[CloudClient] = None):
        self.supabase = supabase
        self.cloud = cloud

    def get_instance(self, instance_id: str) -> InstanceResponse:
        """Get instance by ID"""
        result = self.supabase.table("instances")\
            .select("*")\
            .eq("id", instance_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundLocal(f"Instance {instance_id} not found")
        return InstanceResponse(**result.data[0])

    def find_by_openstack_id(self, openstack_id: str) -> Optional[InstanceResponse]:
        result = self.supabase.table("instances")\
            .select("*")\
            .eq("openstack_id", openstack_id)\
            .limit(1)\
            .execute()
        return InstanceResponse(**result.data[0]) if result.data else None

    def list_instances(self, workshop_id: Optional[str] = None) -> List[InstanceResponse]:
        query = self.supabase.table("instances").select("*")
        if workshop_id:
            query = query.eq("workshop_id", workshop_id)
        result = query.order("name").execute()
        return [InstanceResponse(**row) for row in (result.data or [])]

    def resolve_context(self, instance_id: str) -> InstanceContext:
        """Instance plus the workshop and provider it lives under."""
        instance = self.get_instance(instance_id)
        workshop = WorkshopService(self.supabase).get_workshop_by_id(instance.workshop_id)
        provider = ProviderService(self.supabase).get_provider(workshop.provider_id)
        return instance, workshop, provider

    async def create_instance(self, instance_data: InstanceCreate) -> InstanceResponse:
        """Register an existing remote server, then sync it once (best effort)."""
        workshop = WorkshopService(self.supabase).get_workshop_by_id(instance_data.workshop_id)
        if self.find_by_openstack_id(instance_data.openstack_id):
            raise AlreadyExists("Instance with this OpenStack ID already exists")

        instance_id = str(uuid.uuid4())
        self.supabase.table("instances").insert({
            "id": instance_id,
            "name": instance_data.name,
            "openstack_id": instance_data.openstack_id,
            "workshop_id": workshop.id,
            "team_id": instance_data.team_id,
            "user_id": instance_data.user_id,
            "status": "UNKNOWN",
            "power_state": "UNKNOWN",
            "ip_addresses": [],
            "locked": False,
        }).execute()

        if self.cloud is not None:
            try:
                provider = ProviderService(self.supabase).get_provider(workshop.provider_id)
                server = await self.cloud.get_instance_details(
                    provider, instance_data.openstack_id, workshop.openstack_project_name
                )
                apply_remote_state(self.supabase, instance_id, server)
            except WiretapError as e:
                # Creation stands even when the first sync fails
                logger.error(f"Error syncing new instance {instance_id}: {e.message}")

        return self.get_instance(instance_id)

    def update_instance(self, instance_id: str, instance_data: InstanceUpdate) -> InstanceResponse:
        self.get_instance(instance_id)
        update_data = instance_data.model_dump(exclude_unset=True)
        if update_data:
            self.supabase.table("instances")\
                .update(update_data)\
                .eq("id", instance_id)\
                .execute()
        return self.get_instance(instance_id)

    def delete_instance(self, instance_id: str) -> bool:
        """Delete the instance row. Sessions are closed by the caller beforehand."""
        self.get_instance(instance_id)
        result = self.supabase.table("instances")\
            .delete()\
            .eq("id", instance_id)\
            .execute()
        return len(result.data or []) > 0

    def _set_power_state(self, instance_id: str, power_state: str) -> None:
        self.supabase.table("instances")\
            .update({"power_state": power_state})\
            .eq("id", instance_id)\
            .execute()

    async def power_on(self, instance_id: str) -> PowerActionResponse:
        instance, workshop, provider = self.resolve_context(instance_id)
        await self.cloud.power_on(provider, instance.openstack_id, workshop.openstack_project_name)
        self._set_power_state(instance.id, "RUNNING")
        logger.info(f"Powered on instance {instance.id}")
        return PowerActionResponse(instance_id=instance.id, action="power_on", power_state="RUNNING")

    async def power_off(self, instance_id: str) -> PowerActionResponse:
        instance, workshop, provider = self.resolve_context(instance_id)
        await self.cloud.power_off(provider, instance.openstack_id, workshop.openstack_project_name)
        self._set_power_state(instance.id, "SHUTDOWN")
        logger.info(f"Powered off instance {instance.id}")
        return PowerActionResponse(instance_id=instance.id, action="power_off", power_state="SHUTDOWN")

    async def restart(self, instance_id: str, hard: bool = False) -> PowerActionResponse:
        instance, workshop, provider = self.resolve_context(instance_id)
        await self.cloud.restart(provider, instance.openstack_id, hard=hard, project_name=workshop.openstack_project_name)
        logger.info(f"Restarted instance {instance.id} ({'hard' if hard else 'soft'})")
        return PowerActionResponse(
            instance_id=instance.id,
            action="hard_reboot" if hard else "soft_reboot",
            power_state=instance.power_state,
        )

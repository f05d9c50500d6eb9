"""
Keeps local instance rows in line with what Nova reports.

ingest() adopts remote servers into local rows, sync() refreshes one row, sync_all() sweeps
every enabled provider and workshop. Rows that vanish remotely are never deleted here.
"""
from supabase import Client
from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import NotFoundRemote
from wiretap.core.worker_pool import run_bounded
from wiretap.modules.instances.schemas import IngestResult, IngestedInstance, SyncResult, SyncAllResult
from wiretap.modules.instances.service import InstanceService, apply_remote_state
from wiretap.modules.openstack.client import CloudClient
from wiretap.modules.openstack.schemas import Server
from wiretap.modules.providers.schemas import ProviderConfig
from wiretap.modules.providers.service import ProviderService
from wiretap.modules.workshops.schemas import WorkshopResponse
from wiretap.modules.workshops.service import WorkshopService
from typing import Iterable, List, Optional, Tuple
import logging
import uuid

logger = logging.getLogger(__name__)


class InstanceReconciler:
    def __init__(self, supabase: Client, cloud: CloudClient, app_settings: Optional[Settings] = None):
        self.supabase = supabase
        self.cloud = cloud
        self.settings = app_settings or default_settings
        self.instances = InstanceService(supabase, cloud)
        self.workshops = WorkshopService(supabase)
        self.providers = ProviderService(supabase, cloud, self.settings)

    async def _project_id(self, provider: ProviderConfig, workshop: WorkshopResponse) -> str:
        if workshop.openstack_project_id:
            return workshop.openstack_project_id
        project_id = await self.cloud.get_project_id(provider, workshop.openstack_project_name)
        if not project_id:
            raise NotFoundRemote(f"Project not found: {workshop.openstack_project_name}")
        return project_id

    async def list_remote(self, provider: ProviderConfig, workshop: WorkshopResponse) -> List[Server]:
        project_id = await self._project_id(provider, workshop)
        return await self.cloud.list_instances_for_project(provider, workshop.openstack_project_name, project_id)

    async def ingest(
        self,
        provider: ProviderConfig,
        workshop: WorkshopResponse,
        team_id: Optional[str] = None,
        user_id: Optional[str] = None,
        remote_ids: Optional[Iterable[str]] = None,
    ) -> IngestResult:
        """Create rows for unknown remote servers of the workshop's project, refresh known ones."""
        servers = await self.list_remote(provider, workshop)
        logger.info(f"Found {len(servers)} instances in project {workshop.openstack_project_name}")
        if remote_ids is not None:
            wanted = set(remote_ids)
            servers = [s for s in servers if s.id in wanted]
            logger.info(f"Filtered to {len(servers)} requested instances")

        result = IngestResult()
        for server in servers:
            try:
                result.instances.append(self._ingest_one(server, workshop, team_id, user_id))
                if result.instances[-1].created:
                    result.ingested_count += 1
                else:
                    result.updated_count += 1
            except Exception as e:
                logger.error(f"Error processing instance {server.id}: {e}")
                result.error_count += 1

        logger.info(
            f"Ingestion for workshop {workshop.name} completed: {result.ingested_count} created, "
            f"{result.updated_count} updated, {result.error_count} failed"
        )
        return result

    def _ingest_one(
        self, server: Server, workshop: WorkshopResponse, team_id: Optional[str], user_id: Optional[str]
    ) -> IngestedInstance:
        existing = self.instances.find_by_openstack_id(server.id)
        if existing is None:
            instance_id = str(uuid.uuid4())
            name = server.name or server.id
            self.supabase.table("instances").insert({
                "id": instance_id,
                "name": name,
                "openstack_id": server.id,
                "workshop_id": workshop.id,
                "team_id": team_id,
                "user_id": user_id,
                "status": server.status,
                "power_state": server.power_state,
                "ip_addresses": server.ip_addresses,
                "locked": False,
            }).execute()
            logger.debug(f"Created new instance {name} in workshop {workshop.name}")
            return IngestedInstance(
                id=instance_id, name=name, openstack_id=server.id, workshop_id=workshop.id,
                status=server.status, power_state=server.power_state, created=True,
            )

        update_data = {
            "status": server.status,
            "power_state": server.power_state,
            "ip_addresses": server.ip_addresses,
        }
        if team_id:
            update_data["team_id"] = team_id
        self.supabase.table("instances")\
            .update(update_data)\
            .eq("id", existing.id)\
            .execute()
        logger.debug(f"Updated existing instance {existing.name} in workshop {workshop.name}")
        return IngestedInstance(
            id=existing.id, name=existing.name, openstack_id=server.id, workshop_id=existing.workshop_id,
            status=server.status, power_state=server.power_state, created=False,
        )

    async def ingest_provider(self, provider: ProviderConfig, team_id: Optional[str] = None) -> IngestResult:
        """Ingest every enabled workshop of the provider, one worker-pool unit per workshop."""
        workshops = self.workshops.list_workshops(provider_id=provider.id, enabled_only=True)
        logger.info(f"Starting VM ingestion for provider {provider.name}: {len(workshops)} workshop(s)")
        units = await run_bounded(
            workshops,
            lambda workshop: self.ingest(provider, workshop, team_id=team_id),
            self.settings.sync_concurrency,
            label=lambda w: f"workshop {w.name}",
        )
        total = IngestResult()
        for unit in units:
            if unit.ok:
                total.merge(unit.value)
            else:
                total.error_count += 1
        return total

    async def ingest_specific(
        self,
        provider: ProviderConfig,
        project_name: str,
        remote_ids: List[str],
        team_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> IngestResult:
        workshop = self.workshops.get_workshop_by_project_name(project_name)
        return await self.ingest(provider, workshop, team_id=team_id, user_id=user_id, remote_ids=remote_ids)

    async def sync(self, instance_id: str) -> SyncResult:
        """Refresh one row from Nova. Raises NotFoundRemote when the server is gone."""
        instance, workshop, provider = self.instances.resolve_context(instance_id)
        server = await self.cloud.get_instance_details(
            provider, instance.openstack_id, workshop.openstack_project_name
        )
        apply_remote_state(self.supabase, instance.id, server)
        return SyncResult(
            instance=self.instances.get_instance(instance.id),
            status=server.status,
            power_state=server.power_state,
            ip_addresses=server.ip_addresses,
        )

    async def _sync_workshop(self, unit: Tuple[ProviderConfig, WorkshopResponse]) -> SyncAllResult:
        provider, workshop = unit
        local = self.instances.list_instances(workshop_id=workshop.id)
        tally = SyncAllResult(total=len(local))
        if not local:
            return tally
        try:
            servers = await self.list_remote(provider, workshop)
        except Exception as e:
            logger.error(f"Error updating workshop {workshop.name} ({workshop.id}): {e}")
            tally.error_count += 1
            return tally

        remote = {server.id: server for server in servers}
        for instance in local:
            server = remote.get(instance.openstack_id)
            if server is None:
                logger.warning(f"No OpenStack data found for instance {instance.id} ({instance.openstack_id})")
                tally.error_count += 1
                continue
            try:
                apply_remote_state(self.supabase, instance.id, server)
                tally.synced_count += 1
            except Exception as e:
                logger.error(f"Error syncing instance {instance.id}: {e}")
                tally.error_count += 1
        return tally

    async def sync_all(self) -> SyncAllResult:
        """Best-effort sweep: enabled providers -> enabled workshops -> their instances."""
        totals = SyncAllResult()
        units: List[Tuple[ProviderConfig, WorkshopResponse]] = []
        for provider in self.providers.list_providers(enabled_only=True):
            try:
                for workshop in self.workshops.list_workshops(provider_id=provider.id, enabled_only=True):
                    units.append((provider, workshop))
            except Exception as e:
                logger.error(f"Error listing workshops for provider {provider.name}: {e}")
                totals.error_count += 1

        results = await run_bounded(
            units,
            self._sync_workshop,
            self.settings.sync_concurrency,
            label=lambda u: f"workshop {u[1].name}",
        )
        for result in results:
            if result.ok:
                totals.synced_count += result.value.synced_count
                totals.error_count += result.value.error_count
                totals.total += result.value.total
            else:
                totals.error_count += 1

        logger.info(
            f"Instance status update completed: {totals.synced_count} synced, "
            f"{totals.error_count} errors, {totals.total} total"
        )
        return totals

import pytest

from wiretap.core.errors import NotFoundRemote
from wiretap.modules.instances.reconciler import InstanceReconciler


@pytest.fixture
def reconciler(seeded, cloud, test_settings) -> InstanceReconciler:
    return InstanceReconciler(seeded, cloud, test_settings)


def _local(supabase, openstack_id):
    return next(row for row in supabase.rows("instances") if row["openstack_id"] == openstack_id)


@pytest.mark.asyncio
async def test_ingest_creates_then_updates(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1", name="vm-1")
    openstack.add_server("proj-a", "srv-2", name="vm-2", status="SHUTOFF", power_state=4)

    first = await reconciler.ingest(provider, workshop, team_id="team-1", user_id="user-1")
    assert (first.ingested_count, first.updated_count, first.error_count) == (2, 0, 0)
    row = _local(seeded, "srv-2")
    assert row["status"] == "SHUTOFF"
    assert row["power_state"] == "SHUTDOWN"
    assert row["team_id"] == "team-1"
    assert row["user_id"] == "user-1"
    assert row["workshop_id"] == "ws-a"

    openstack.find_server("srv-2")["status"] = "ACTIVE"
    second = await reconciler.ingest(provider, workshop)
    assert (second.ingested_count, second.updated_count) == (0, 2)
    assert len(seeded.rows("instances")) == 2
    assert _local(seeded, "srv-2")["status"] == "ACTIVE"
    assert _local(seeded, "srv-2")["team_id"] == "team-1"


@pytest.mark.asyncio
async def test_ingest_with_id_filter(reconciler, seeded, openstack, provider, workshop):
    for server_id in ("srv-1", "srv-2", "srv-3"):
        openstack.add_server("proj-a", server_id)
    result = await reconciler.ingest(provider, workshop, remote_ids=["srv-2"])
    assert result.ingested_count == 1
    assert [row["openstack_id"] for row in seeded.rows("instances")] == ["srv-2"]


@pytest.mark.asyncio
async def test_ingest_never_deletes_vanished_rows(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1")
    await reconciler.ingest(provider, workshop)
    openstack.servers["proj-a"] = []
    await reconciler.ingest(provider, workshop)
    assert len(seeded.rows("instances")) == 1


@pytest.mark.asyncio
async def test_ingest_resolves_project_id_by_name(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1")
    workshop = workshop.model_copy(update={"openstack_project_id": None})
    result = await reconciler.ingest(provider, workshop)
    assert result.ingested_count == 1


@pytest.mark.asyncio
async def test_ingest_unknown_project(reconciler, provider, workshop):
    workshop = workshop.model_copy(update={"openstack_project_id": None, "openstack_project_name": "ghost"})
    with pytest.raises(NotFoundRemote):
        await reconciler.ingest(provider, workshop)


@pytest.mark.asyncio
async def test_ingest_specific_by_project_name(reconciler, seeded, openstack, provider):
    openstack.add_server("proj-a", "srv-1")
    openstack.add_server("proj-a", "srv-2")
    result = await reconciler.ingest_specific(provider, "workshop-a", ["srv-1"], team_id="team-9")
    assert result.ingested_count == 1
    assert _local(seeded, "srv-1")["team_id"] == "team-9"


@pytest.mark.asyncio
async def test_sync_replaces_ip_list_and_is_idempotent(reconciler, seeded, openstack, provider, workshop):
    server = openstack.add_server("proj-a", "srv-1", addresses={
        "private": [{"addr": "10.0.0.5", "OS-EXT-IPS:type": "fixed"}],
    })
    await reconciler.ingest(provider, workshop)
    instance_id = _local(seeded, "srv-1")["id"]

    server["addresses"] = {
        "private": [{"addr": "10.0.0.7", "OS-EXT-IPS:type": "fixed"}],
        "public": [{"addr": "172.24.4.2", "OS-EXT-IPS:type": "floating"}],
    }
    result = await reconciler.sync(instance_id)
    assert result.ip_addresses == ["10.0.0.7", "172.24.4.2"]
    assert _local(seeded, "srv-1")["ip_addresses"] == ["10.0.0.7", "172.24.4.2"]

    snapshot = dict(_local(seeded, "srv-1"))
    again = await reconciler.sync(instance_id)
    assert again.status == "ACTIVE"
    assert _local(seeded, "srv-1") == snapshot

    server["addresses"] = {}
    await reconciler.sync(instance_id)
    assert _local(seeded, "srv-1")["ip_addresses"] == []


@pytest.mark.asyncio
async def test_sync_missing_remote(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1")
    await reconciler.ingest(provider, workshop)
    openstack.servers["proj-a"] = []
    with pytest.raises(NotFoundRemote):
        await reconciler.sync(_local(seeded, "srv-1")["id"])


@pytest.mark.asyncio
async def test_sync_all_contains_failing_workshop(reconciler, seeded, openstack, provider, workshop):
    for suffix in ("b", "c"):
        seeded.tables["workshops"].append({
            "id": f"ws-{suffix}",
            "name": f"Workshop {suffix.upper()}",
            "provider_id": "prov-1",
            "openstack_project_id": f"proj-{suffix}",
            "openstack_project_name": f"workshop-{suffix}",
            "enabled": True,
        })
    for server_id in ("srv-1", "srv-2", "srv-3"):
        openstack.add_server("proj-a", server_id)
    openstack.add_server("proj-b", "srv-b1")
    openstack.add_server("proj-b", "srv-b2")
    openstack.add_server("proj-c", "srv-c1")
    openstack.add_server("proj-c", "srv-c2")
    await reconciler.ingest(provider, workshop)
    for workshop_id in ("ws-b", "ws-c"):
        await reconciler.ingest(provider, reconciler.workshops.get_workshop_by_id(workshop_id))

    # the failing workshop sorts between two healthy ones
    openstack.failing_projects.add("proj-b")
    refreshed = ("srv-1", "srv-2", "srv-3", "srv-c1", "srv-c2")
    for server_id in refreshed:
        openstack.find_server(server_id)["status"] = "SHUTOFF"

    result = await reconciler.sync_all()
    assert result.synced_count == 5
    assert result.error_count == 1
    assert result.total == 7
    assert all(_local(seeded, s)["status"] == "SHUTOFF" for s in refreshed)
    assert all(_local(seeded, s)["status"] == "ACTIVE" for s in ("srv-b1", "srv-b2"))


@pytest.mark.asyncio
async def test_sync_all_counts_remotely_missing_instance(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1")
    openstack.add_server("proj-a", "srv-2")
    await reconciler.ingest(provider, workshop)
    openstack.servers["proj-a"] = openstack.servers["proj-a"][:1]

    result = await reconciler.sync_all()
    assert (result.synced_count, result.error_count, result.total) == (1, 1, 2)


@pytest.mark.asyncio
async def test_sync_all_skips_disabled_providers(reconciler, seeded, openstack, provider, workshop):
    openstack.add_server("proj-a", "srv-1")
    await reconciler.ingest(provider, workshop)
    seeded.tables["providers"][0]["enabled"] = False
    result = await reconciler.sync_all()
    assert (result.synced_count, result.error_count, result.total) == (0, 0, 0)

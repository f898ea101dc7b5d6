from __future__ import annotations

from dataclasses import dataclass

import pytest

from linodeswarm.errors import ApiError, CatalogError, JobTimeoutError
from linodeswarm.providers.linode.catalog import fetch_catalog, with_field_equal
from linodeswarm.providers.linode.client import LinodeGateway
from linodeswarm.providers.linode.fleet import ActionDescriptor, for_each_host
from linodeswarm.providers.linode.jobs import host_succeeded, monitor_job, wait_for_boot

from conftest import FakeLinode

pytestmark = [pytest.mark.unit]


@dataclass
class Entry:
    create: bool = True
    linode_id: int | None = None


# ─── Fleet mapper ────────────────────────────────────────────────────


class TestForEachHost:
    @pytest.mark.asyncio
    async def test_one_call_per_host_in_order(self, gateway: LinodeGateway, linode: FakeLinode):
        working = {"dev100": Entry(), "dev101": Entry()}

        def describe(host: str, entry: Entry) -> ActionDescriptor:
            def on_result(data: dict) -> None:
                entry.linode_id = data["LinodeID"]
            return ActionDescriptor("linode.create", {"DatacenterID": 7, "PlanID": 1}, on_result)

        await for_each_host(gateway, working, ["dev100", "dev101"], describe)

        assert linode.actions() == ["linode.create", "linode.create"]
        assert working["dev100"].linode_id is not None
        assert working["dev100"].linode_id != working["dev101"].linode_id

    @pytest.mark.asyncio
    async def test_no_call_when_describe_returns_none(self, gateway: LinodeGateway, linode: FakeLinode):
        working = {"dev100": Entry(create=False), "dev101": Entry()}

        def describe(host: str, entry: Entry) -> ActionDescriptor | None:
            if not entry.create:
                return None
            return ActionDescriptor("linode.create", {"DatacenterID": 7, "PlanID": 1})

        await for_each_host(gateway, working, ["dev100", "dev101"], describe)

        assert linode.actions() == ["linode.create"]

    @pytest.mark.asyncio
    async def test_api_error_aborts_phase(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.errors["linode.update"] = [{"ERRORCODE": 5, "ERRORMESSAGE": "Object not found"}]
        working = {"dev100": Entry(), "dev101": Entry()}

        with pytest.raises(ApiError):
            await for_each_host(
                gateway, working, ["dev100", "dev101"],
                lambda host, e: ActionDescriptor("linode.update", {"LinodeID": 1, "Label": host}),
            )

        assert linode.actions() == ["linode.update"]


# ─── Job poller ──────────────────────────────────────────────────────


class TestJobs:
    def test_host_succeeded_accepts_int_or_string(self):
        assert host_succeeded({"HOST_SUCCESS": 1})
        assert host_succeeded({"HOST_SUCCESS": "1"})
        assert not host_succeeded({"HOST_SUCCESS": ""})
        assert not host_succeeded({})

    @pytest.mark.asyncio
    async def test_on_tick_sees_every_snapshot(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.boot_pending_polls = 2
        ticks: list[object] = []

        def on_tick(job: dict) -> bool:
            ticks.append(job["HOST_SUCCESS"])
            return host_succeeded(job)

        job = await monitor_job(gateway, 101, 500, on_tick, interval=0, max_attempts=5)

        assert ticks == ["", "", 1]
        assert job["JOBID"] == 500
        assert linode.params("linode.job.list")[0] == {"LinodeID": "101", "JobID": "500"}

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.boot_pending_polls = 100

        with pytest.raises(JobTimeoutError) as exc_info:
            await monitor_job(gateway, 101, 500, host_succeeded, interval=0, max_attempts=3)

        assert exc_info.value.attempts == 3
        assert len(linode.params("linode.job.list")) == 3

    @pytest.mark.asyncio
    async def test_status_query_error_is_not_retried(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.errors["linode.job.list"] = [{"ERRORCODE": 5, "ERRORMESSAGE": "Object not found"}]

        with pytest.raises(ApiError):
            await monitor_job(gateway, 101, 500, host_succeeded, interval=0, max_attempts=3)

        assert len(linode.params("linode.job.list")) == 1

    @pytest.mark.asyncio
    async def test_wait_for_boot_returns_finish_time(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.boot_pending_polls = 1
        finished = await wait_for_boot(gateway, "dev100", 101, 500, interval=0, max_attempts=5)
        assert finished == "2017-03-01 10:00:00.0"


# ─── Catalog ─────────────────────────────────────────────────────────


class TestCatalog:
    def test_with_field_equal(self):
        items = [{"LABEL": "a", "ID": 1}, {"LABEL": "b", "ID": 2}, {"LABEL": "b", "ID": 3}]
        assert with_field_equal(items, "LABEL", "b") == {"LABEL": "b", "ID": 2}
        assert with_field_equal(items, "LABEL", "z") is None

    @pytest.mark.asyncio
    async def test_full_snapshot_is_one_ordered_batch(self, gateway: LinodeGateway, linode: FakeLinode):
        linode.add_linode("dev100")
        catalog = await fetch_catalog(gateway)

        assert linode.actions() == [
            "avail.datacenters",
            "avail.distributions",
            "avail.linodeplans",
            "avail.kernels",
            "stackscript.list",
            "linode.list",
            "domain.list",
        ]
        assert catalog.plan("Linode 2048")["PLANID"] == 2
        assert catalog.datacenter("london")["DATACENTERID"] == 7
        assert catalog.distribution("Debian 8")["DISTRIBUTIONID"] == 140
        assert catalog.stackscript("Ubuntu 16.10 Docker Development")["STACKSCRIPTID"] == 9002
        assert catalog.grub2_kernel()["KERNELID"] == 210
        assert catalog.domain("example.com")["DOMAINID"] == 55
        assert catalog.existing_linode("dev100") is not None
        assert catalog.existing_linode("dev101") is None

    @pytest.mark.asyncio
    async def test_inventory_only_snapshot(self, gateway: LinodeGateway, linode: FakeLinode):
        await fetch_catalog(gateway, full=False)
        assert linode.actions() == ["linode.list", "domain.list"]

    @pytest.mark.asyncio
    async def test_missing_entries_raise_catalog_error(self, gateway: LinodeGateway):
        catalog = await fetch_catalog(gateway)

        with pytest.raises(CatalogError, match="plan not found: Linode 9999"):
            catalog.plan("Linode 9999")
        with pytest.raises(CatalogError, match="master domain record"):
            catalog.domain("nope.org")
        with pytest.raises(CatalogError):
            catalog.datacenter("atlantis")

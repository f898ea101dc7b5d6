"""Cluster provisioning driver.

Flow:
    catalog snapshot → skip hosts that already exist → confirmation →
    CA passphrase check (TLS only) → working set → API phases, one host
    after another per phase → DNS → settle → certificates (TLS only) →
    swarm bootstrap

Every API phase is a ``describe`` function handed to ``for_each_host``.
The first failure anywhere aborts the run; hosts already created stay
created and are skipped by the next run.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .bootstrap.certs import CertificateBootstrap
from .bootstrap.openssl import check_ca_files
from .bootstrap.swarm import SwarmBootstrap, SwarmResult
from .config import ClusterConfig
from .constants import (
    BOOT_POLL_INTERVAL,
    BOOT_POLL_MAX_ATTEMPTS,
    BOOT_SETTLE_DELAY,
    DNS_TTL_SECONDS,
    JOB_POLL_INTERVAL,
    JOB_POLL_MAX_ATTEMPTS,
    SSH_SETTLE_DELAY,
    SWAP_SIZE_MB,
    SWARM_JOIN_PAUSE,
    SwarmRole,
)
from .errors import ValidationError
from .infra.pipeline import for_each
from .orchestrator import Orchestrator
from .providers.linode.catalog import Catalog, fetch_catalog
from .providers.linode.fleet import ActionDescriptor, Describe, for_each_host
from .providers.linode.jobs import wait_for_boot
from .providers.linode.types import (
    DatacenterResponse,
    DomainResponse,
    IPAddressResponse,
    PlanResponse,
)

log = logger.bind(component="provision")

type PlanQuote = tuple[str, str, float]
type Confirm = Callable[[Sequence[PlanQuote]], bool]


@dataclass(frozen=True, slots=True)
class Timing:
    """Poll intervals, budgets and pauses used during one run."""

    job_interval: float = JOB_POLL_INTERVAL
    job_attempts: int = JOB_POLL_MAX_ATTEMPTS
    boot_interval: float = BOOT_POLL_INTERVAL
    boot_attempts: int = BOOT_POLL_MAX_ATTEMPTS
    boot_settle: float = BOOT_SETTLE_DELAY
    ssh_settle: float = SSH_SETTLE_DELAY
    join_pause: float = SWARM_JOIN_PAUSE

    @classmethod
    def immediate(cls) -> Timing:
        """No waiting at all; polls still run, back to back."""
        return cls(
            job_interval=0, boot_interval=0, boot_settle=0, ssh_settle=0, join_pause=0,
        )


@dataclass(slots=True)
class WorkingHost:
    """Everything learned about one host while it is being built."""

    role: SwarmRole
    root_pass: str
    plan: PlanResponse
    datacenter: DatacenterResponse
    domain: DomainResponse
    distribution_id: int
    stackscript_id: int
    kernel_id: int
    udf_json: str
    distro_size_mb: int
    swap_size_mb: int = SWAP_SIZE_MB
    disk_ids: list[int] = field(default_factory=list)
    linode_id: int | None = None
    config_id: int | None = None
    disk_job: int | None = None
    swap_job: int | None = None
    boot_job: int | None = None
    private_ipv4: str | None = None
    public_ipv4: str | None = None
    dns_resource_id: int | None = None


@dataclass(frozen=True, slots=True)
class ProvisionReport:
    built: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    certified: tuple[str, ...] = ()
    swarm: SwarmResult | None = None
    cancelled: bool = False


def split_existing(catalog: Catalog, hosts: Sequence[str]) -> tuple[list[str], list[str]]:
    """Return (to_build, existing) by matching Linode labels."""
    to_build: list[str] = []
    existing: list[str] = []
    for host in hosts:
        (existing if catalog.existing_linode(host) else to_build).append(host)
    return to_build, existing


def quote_plans(config: ClusterConfig, catalog: Catalog, hosts: Sequence[str]) -> list[PlanQuote]:
    """(host, plan label, monthly price) for the confirmation prompt."""
    quotes = []
    for host in hosts:
        plan = catalog.plan(config.host_config[host].plan_type)
        quotes.append((host, plan["LABEL"], float(plan["PRICE"])))
    return quotes


def build_working_set(
    config: ClusterConfig, catalog: Catalog, hosts: Sequence[str]
) -> dict[str, WorkingHost]:
    """Resolve every catalog id up front, so no phase starts on a bad lookup."""
    distribution = catalog.distribution(config.distro)
    stackscript = catalog.stackscript(config.stack_script_label)
    kernel = catalog.grub2_kernel()
    domain = catalog.domain(config.domain_name)
    datacenter = catalog.datacenter(config.datacenter)

    working: dict[str, WorkingHost] = {}
    for host in hosts:
        host_config = config.host_config[host]
        plan = catalog.plan(host_config.plan_type)
        distro_size_mb = int(plan["DISK"]) * 1024 - SWAP_SIZE_MB
        if distro_size_mb <= 0:
            raise ValidationError(f"Plan {plan['LABEL']} has no room for a {SWAP_SIZE_MB} MB swap disk")
        working[host] = WorkingHost(
            role=host_config.role,
            root_pass=host_config.password,
            plan=plan,
            datacenter=datacenter,
            domain=domain,
            distribution_id=distribution["DISTRIBUTIONID"],
            stackscript_id=stackscript["STACKSCRIPTID"],
            kernel_id=kernel["KERNELID"],
            udf_json=json.dumps(
                {"hostname": host, "domain": config.domain_name}, separators=(",", ":"),
            ),
            distro_size_mb=distro_size_mb,
        )
    return working


# =============================================================================
# API phases
# =============================================================================


def create_linode(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: dict[str, Any]) -> None:
        w.linode_id = data["LinodeID"]

    return ActionDescriptor(
        "linode.create",
        {"DatacenterID": w.datacenter["DATACENTERID"], "PlanID": w.plan["PLANID"]},
        on_result,
    )


def label_linode(display_group: str) -> Describe[WorkingHost]:
    def describe(host: str, w: WorkingHost) -> ActionDescriptor:
        return ActionDescriptor(
            "linode.update",
            {"LinodeID": w.linode_id, "Label": host, "lpm_displayGroup": display_group},
        )
    return describe


def add_private_ip(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: dict[str, Any]) -> None:
        w.private_ipv4 = data["IPADDRESS"]

    return ActionDescriptor("linode.ip.addprivate", {"LinodeID": w.linode_id}, on_result)


def query_public_ip(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: list[IPAddressResponse]) -> None:
        public = [ip["IPADDRESS"] for ip in data or [] if str(ip.get("ISPUBLIC")) == "1"]
        if len(public) != 1:
            raise ValidationError(f"{host}: expected one public IP address, found {len(public)}")
        w.public_ipv4 = public[0]

    return ActionDescriptor("linode.ip.list", {"LinodeID": w.linode_id}, on_result)


def create_main_disk(distro: str) -> Describe[WorkingHost]:
    def describe(host: str, w: WorkingHost) -> ActionDescriptor:
        def on_result(data: dict[str, Any]) -> None:
            w.disk_job = data["JobID"]
            w.disk_ids.append(data["DiskID"])

        return ActionDescriptor(
            "linode.disk.createfromstackscript",
            {
                "LinodeID": w.linode_id,
                "StackScriptID": w.stackscript_id,
                "StackScriptUDFResponses": w.udf_json,
                "DistributionID": w.distribution_id,
                "Label": distro,
                "Size": w.distro_size_mb,
                "rootPass": w.root_pass,
            },
            on_result,
        )
    return describe


def create_swap_disk(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: dict[str, Any]) -> None:
        w.swap_job = data["JobID"]
        w.disk_ids.append(data["DiskID"])

    return ActionDescriptor(
        "linode.disk.create",
        {
            "LinodeID": w.linode_id,
            "Label": f"{w.swap_size_mb}MB Swap Image",
            "Type": "swap",
            "Size": w.swap_size_mb,
        },
        on_result,
    )


def create_config(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: dict[str, Any]) -> None:
        w.config_id = data["ConfigID"]

    return ActionDescriptor(
        "linode.config.create",
        {
            "LinodeID": w.linode_id,
            "KernelID": w.kernel_id,
            "Label": "Docker Config",
            "Comments": "Created via console script.",
            "DiskList": ",".join(str(d) for d in w.disk_ids),
            "helper_network": True,
        },
        on_result,
    )


def boot_linode(host: str, w: WorkingHost) -> ActionDescriptor:
    def on_result(data: dict[str, Any]) -> None:
        w.boot_job = data["JobID"]

    return ActionDescriptor(
        "linode.boot", {"LinodeID": w.linode_id, "ConfigID": w.config_id}, on_result,
    )


def create_dns_record(domain_name: str) -> Describe[WorkingHost]:
    def describe(host: str, w: WorkingHost) -> ActionDescriptor:
        def on_result(data: dict[str, Any]) -> None:
            w.dns_resource_id = data["ResourceID"]

        return ActionDescriptor(
            "domain.resource.create",
            {
                "DomainID": w.domain["DOMAINID"],
                "Type": "A",
                "Name": f"{host}.{domain_name}",
                "Target": w.public_ipv4,
                "TTL_sec": DNS_TTL_SECONDS,
            },
            on_result,
        )
    return describe


# =============================================================================
# Driver
# =============================================================================


async def _check_passphrase(orch: Orchestrator, passphrase: str | None) -> str:
    _, ca_key = check_ca_files(orch.config.cert_dir)
    if not passphrase:
        raise ValidationError("A CA passphrase is required when docker_tls is on")
    if not await orch.openssl.verify_passphrase(ca_key, passphrase):
        raise ValidationError("OpenSSL failed for this passphrase.")
    return passphrase


async def provision_cluster(
    orch: Orchestrator,
    *,
    confirm: Confirm | None = None,
    passphrase: str | None = None,
    timing: Timing = Timing(),
) -> ProvisionReport:
    """Build every configured host that does not exist yet.

    Args:
        orch: Resources for this run.
        confirm: Called with the plan quotes before anything is created;
            returning False cancels the run. ``None`` means proceed.
        passphrase: CA key passphrase, required when ``docker_tls`` is on.
        timing: Poll and pause settings.

    Raises:
        ValidationError: Bad catalog lookup, passphrase or IP layout.
        ApiError: The control plane rejected an action.
        CommandError, ConnectError, BootTimeoutError, JobTimeoutError:
            A post-boot protocol failed.
    """
    config = orch.config
    gateway = orch.gateway

    catalog = await fetch_catalog(gateway)
    to_build, existing = split_existing(catalog, config.hosts)
    if existing:
        log.info("Skipping {hosts} because they already exist.", hosts=existing)
    if not to_build:
        log.info("There's nothing to provision!")
        return ProvisionReport(skipped=tuple(existing))

    quotes = quote_plans(config, catalog, to_build)
    if confirm is not None and not confirm(quotes):
        log.info("Provisioning cancelled by operator")
        return ProvisionReport(skipped=tuple(existing), cancelled=True)

    if config.docker_tls:
        passphrase = await _check_passphrase(orch, passphrase)

    working = build_working_set(config, catalog, to_build)
    log.info("Provisioning servers on Linode: {hosts}", hosts=to_build)

    for describe in (
        create_linode,
        label_linode(config.display_group),
        add_private_ip,
        query_public_ip,
    ):
        await for_each_host(gateway, working, to_build, describe)

    async def _persist(host: str) -> None:
        w = working[host]
        await orch.records.write(host, {
            "hostname": host,
            "plan_type": config.host_config[host].plan_type,
            "root_pass": w.root_pass,
            "public_ipv4": w.public_ipv4,
            "private_ipv4": w.private_ipv4,
        })

    await for_each(to_build, _persist)

    for describe in (
        create_main_disk(config.distro),
        create_swap_disk,
        create_config,
        boot_linode,
    ):
        await for_each_host(gateway, working, to_build, describe)

    async def _await_boot(host: str) -> None:
        w = working[host]
        await wait_for_boot(
            gateway, host, w.linode_id, w.boot_job,
            interval=timing.job_interval, max_attempts=timing.job_attempts,
        )

    await for_each(to_build, _await_boot)
    await for_each_host(gateway, working, to_build, create_dns_record(config.domain_name))

    log.info(
        "Waiting {seconds} seconds for server boot process to complete before trying SSH.",
        seconds=timing.ssh_settle,
    )
    if timing.ssh_settle > 0:
        await asyncio.sleep(timing.ssh_settle)

    certified: list[str] = []
    if config.docker_tls:
        assert passphrase is not None
        certs = CertificateBootstrap(
            shell=orch.shell,
            records=orch.records,
            config=config,
            passphrase=passphrase,
            openssl=orch.openssl,
            poll_interval=timing.boot_interval,
            poll_attempts=timing.boot_attempts,
            settle_delay=timing.boot_settle,
        )
        certified = await certs.run_all(to_build)

    swarm = SwarmBootstrap(
        shell=orch.shell,
        records=orch.records,
        config=config,
        join_pause=timing.join_pause,
        poll_interval=timing.boot_interval,
        poll_attempts=timing.boot_attempts,
        settle_delay=timing.boot_settle,
    )
    result = await swarm.run(to_build)
    log.info("Finished! Swarm leader is {leader}", leader=result.leader)

    return ProvisionReport(
        built=tuple(to_build),
        skipped=tuple(existing),
        certified=tuple(certified),
        swarm=result,
    )

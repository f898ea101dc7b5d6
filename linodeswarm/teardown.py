"""Deletion of previously provisioned hosts.

Only hosts with a record in the store can be deleted. For each of them the
first DNS A record named after the host is removed, then the Linode itself,
then the local record. The swarm leader marker is removed as soon as any
host goes, since the swarm it describes no longer exists as recorded.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from .errors import ValidationError
from .infra.pipeline import for_each
from .orchestrator import Orchestrator
from .providers.linode.catalog import fetch_catalog
from .providers.linode.fleet import ActionDescriptor, for_each_host
from .providers.linode.types import DomainResourceResponse

log = logger.bind(component="teardown")


@dataclass(slots=True)
class DoomedHost:
    linode_id: int | None
    domain_id: int
    dns_resource_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TeardownReport:
    deleted: tuple[str, ...] = ()
    dns_removed: tuple[str, ...] = ()
    missing_linodes: tuple[str, ...] = ()


def parse_selection(answer: str, count: int) -> list[int]:
    """Parse ``"2,4,5"`` into 1-based indexes into a list of ``count`` hosts.

    Blank entries are ignored; an empty answer selects nothing.

    Raises:
        ValidationError: Non-numeric, repeated or out-of-range index.
    """
    selected: list[int] = []
    for part in answer.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            index = int(part)
        except ValueError:
            raise ValidationError(f"Not a server index: {part!r}") from None
        if index in selected:
            raise ValidationError(f"Repeated server index: {index}")
        if not 1 <= index <= count:
            raise ValidationError(f"Server index out of range: {index}")
        selected.append(index)
    return selected


def _drop_dns(host: str, doomed: DoomedHost) -> ActionDescriptor | None:
    if not doomed.dns_resource_ids:
        return None
    return ActionDescriptor(
        "domain.resource.delete",
        {"DomainID": doomed.domain_id, "ResourceID": doomed.dns_resource_ids[0]},
    )


def _drop_linode(host: str, doomed: DoomedHost) -> ActionDescriptor | None:
    if doomed.linode_id is None:
        return None
    return ActionDescriptor("linode.delete", {"LinodeID": doomed.linode_id, "skipChecks": True})


async def delete_hosts(orch: Orchestrator, hosts: Sequence[str]) -> TeardownReport:
    """Delete ``hosts`` from the account, DNS and the record store.

    Raises:
        ValidationError: A host has no record, or the domain is unknown.
        ApiError: The control plane rejected a call.
    """
    if not hosts:
        return TeardownReport()

    known = set(await orch.records.hosts())
    unknown = [h for h in hosts if h not in known]
    if unknown:
        raise ValidationError(f"No record for hosts: {', '.join(unknown)}")

    gateway = orch.gateway
    catalog = await fetch_catalog(gateway, full=False)
    domain = catalog.domain(orch.config.domain_name)

    doomed: dict[str, DoomedHost] = {}
    missing: list[str] = []
    for host in hosts:
        linode = catalog.existing_linode(host)
        if linode is None:
            log.warning("No Linode labelled {host}; removing its record only", host=host)
            missing.append(host)
        doomed[host] = DoomedHost(
            linode_id=linode["LINODEID"] if linode else None,
            domain_id=domain["DOMAINID"],
        )

    answer = await gateway.call("domain.resource.list", {"DomainID": domain["DOMAINID"]})
    resources: list[DomainResourceResponse] = answer["DATA"] or []
    for resource in resources:
        if resource.get("NAME") in doomed:
            doomed[resource["NAME"]].dns_resource_ids.append(resource["RESOURCEID"])

    await for_each_host(gateway, doomed, hosts, _drop_dns)
    await orch.records.clear_leader()
    await for_each_host(gateway, doomed, hosts, _drop_linode)
    await for_each(hosts, orch.records.delete)

    log.info("Delete operation complete: {hosts}", hosts=list(hosts))
    return TeardownReport(
        deleted=tuple(hosts),
        dns_removed=tuple(h for h in hosts if doomed[h].dns_resource_ids),
        missing_linodes=tuple(missing),
    )

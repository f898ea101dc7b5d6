"""Frozen snapshot of the Linode catalog and the existing inventory.

Fetched once, before any mutation, with a single batch so every later
lookup runs against the same view of the account.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from linodeswarm.constants import GRUB2_KERNEL_LABEL
from linodeswarm.errors import CatalogError

from .client import BatchEntry, LinodeGateway
from .types import (
    ApiResponse,
    DatacenterResponse,
    DistributionResponse,
    DomainResponse,
    KernelResponse,
    LinodeResponse,
    PlanResponse,
    StackScriptResponse,
)


def with_field_equal(items: Sequence[Any], key: str, value: Any) -> Any | None:
    """First item whose ``key`` equals ``value``."""
    for item in items:
        if item.get(key) == value:
            return item
    return None


@dataclass(slots=True)
class Catalog:
    datacenters: list[DatacenterResponse] = field(default_factory=list)
    distributions: list[DistributionResponse] = field(default_factory=list)
    plans: list[PlanResponse] = field(default_factory=list)
    kernels: list[KernelResponse] = field(default_factory=list)
    stackscripts: list[StackScriptResponse] = field(default_factory=list)
    linodes: list[LinodeResponse] = field(default_factory=list)
    domains: list[DomainResponse] = field(default_factory=list)

    def plan(self, label: str) -> PlanResponse:
        if (plan := with_field_equal(self.plans, "LABEL", label)) is None:
            raise CatalogError("plan", label)
        return plan

    def datacenter(self, abbr: str) -> DatacenterResponse:
        if (dc := with_field_equal(self.datacenters, "ABBR", abbr)) is None:
            raise CatalogError("datacenter", abbr)
        return dc

    def distribution(self, label: str) -> DistributionResponse:
        if (dist := with_field_equal(self.distributions, "LABEL", label)) is None:
            raise CatalogError("distribution", label)
        return dist

    def stackscript(self, label: str) -> StackScriptResponse:
        if (ss := with_field_equal(self.stackscripts, "LABEL", label)) is None:
            raise CatalogError("Stack Script", label)
        return ss

    def grub2_kernel(self) -> KernelResponse:
        if (kernel := with_field_equal(self.kernels, "LABEL", GRUB2_KERNEL_LABEL)) is None:
            raise CatalogError("kernel", GRUB2_KERNEL_LABEL)
        return kernel

    def domain(self, name: str) -> DomainResponse:
        if (domain := with_field_equal(self.domains, "DOMAIN", name)) is None:
            raise CatalogError("master domain record", name)
        return domain

    def existing_linode(self, label: str) -> LinodeResponse | None:
        return with_field_equal(self.linodes, "LABEL", label)


def _setter(catalog: Catalog, attr: str):
    def on_result(answer: ApiResponse) -> None:
        setattr(catalog, attr, list(answer["DATA"] or []))
    return on_result


async def fetch_catalog(gateway: LinodeGateway, *, full: bool = True) -> Catalog:
    """Fetch the catalog in one ordered batch.

    With ``full=False`` only the inventory (``linode.list``, ``domain.list``)
    is loaded, which is all deletion needs.
    """
    catalog = Catalog()
    batch: list[BatchEntry] = []
    if full:
        batch += [
            ("avail.datacenters", {}, _setter(catalog, "datacenters")),
            ("avail.distributions", {}, _setter(catalog, "distributions")),
            ("avail.linodeplans", {}, _setter(catalog, "plans")),
            ("avail.kernels", {"isXen": False, "isKVM": True}, _setter(catalog, "kernels")),
            ("stackscript.list", {}, _setter(catalog, "stackscripts")),
        ]
    batch += [
        ("linode.list", {}, _setter(catalog, "linodes")),
        ("domain.list", {}, _setter(catalog, "domains")),
    ]
    await gateway.call_batch(batch)
    return catalog

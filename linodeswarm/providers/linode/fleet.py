"""Fleet action mapper: one API action per host, host after host.

Each provisioning phase is a single ``for_each_host`` call whose
``describe`` function turns a host's working entry into an
ActionDescriptor, or into ``None`` when the host sits this phase out.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from linodeswarm.infra.pipeline import for_each

from .client import LinodeGateway


@dataclass(slots=True)
class ActionDescriptor:
    """One API call plus the continuation that folds its DATA into the working set."""

    action: str
    params: dict[str, Any] = field(default_factory=dict)
    on_result: Callable[[Any], None] = lambda _data: None


type Describe[W] = Callable[[str, W], ActionDescriptor | None]


async def for_each_host[W](
    gateway: LinodeGateway,
    working: Mapping[str, W],
    hosts: Sequence[str],
    describe: Describe[W],
) -> None:
    """Run one phase across ``hosts`` sequentially.

    No API call is issued for a host whose ``describe`` returns ``None``.
    The first ApiError aborts the phase.
    """
    async def _step(host: str) -> None:
        descriptor = describe(host, working[host])
        if descriptor is None:
            logger.bind(component="fleet", host=host).debug("Skipping {host}", host=host)
            return
        answer = await gateway.call(descriptor.action, descriptor.params)
        descriptor.on_result(answer["DATA"])

    await for_each(hosts, _step)

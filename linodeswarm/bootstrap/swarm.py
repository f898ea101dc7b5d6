"""Docker swarm bootstrap.

leader discovery → (first run only) swarm init + marker → token retrieval →
phased join of every other host.

The leader marker is authoritative once written: no re-election ever
happens. It is persisted only after ``docker swarm init`` succeeded, so a
crash in between leaves no marker pointing at an uninitialized leader.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from linodeswarm.config import ClusterConfig
from linodeswarm.constants import (
    BOOT_POLL_INTERVAL,
    BOOT_POLL_MAX_ATTEMPTS,
    BOOT_SETTLE_DELAY,
    SWARM_JOIN_PAUSE,
    SWARM_PORT,
    SwarmRole,
)
from linodeswarm.errors import PersistenceError, ValidationError
from linodeswarm.infra.pipeline import for_each
from linodeswarm.infra.protocols import RemoteShell
from linodeswarm.records import RecordStore

from .boot import wait_for_boot_marker

log = logger.bind(component="swarm")


def init_command(private_ipv4: str) -> str:
    addr = f"{private_ipv4}:{SWARM_PORT}"
    return f"docker swarm init --advertise-addr {addr} --listen-addr {addr}"


def join_command(private_ipv4: str, token: str, leader_ipv4: str) -> str:
    addr = f"{private_ipv4}:{SWARM_PORT}"
    return (
        f"docker swarm join --advertise-addr {addr} --listen-addr {addr} "
        f"--token {token} {leader_ipv4}:{SWARM_PORT}"
    )


@dataclass(frozen=True, slots=True)
class SwarmTokens:
    worker: str
    manager: str

    def for_role(self, role: SwarmRole) -> str:
        match role:
            case SwarmRole.WORKER:
                return self.worker
            case SwarmRole.MANAGER:
                return self.manager
            case _:
                raise ValidationError(f"Unknown swarm type: {role}")


class SwarmState(StrEnum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SwarmResult:
    """Outcome of a completed bootstrap. A failed bootstrap raises instead."""

    leader: str
    initialized: bool
    joined: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    state: SwarmState = SwarmState.COMPLETE


@dataclass
class SwarmBootstrap:
    shell: RemoteShell
    records: RecordStore
    config: ClusterConfig
    join_pause: float = SWARM_JOIN_PAUSE
    wait_for_boot: bool = True
    poll_interval: float = BOOT_POLL_INTERVAL
    poll_attempts: int = BOOT_POLL_MAX_ATTEMPTS
    settle_delay: float = BOOT_SETTLE_DELAY
    state: SwarmState = field(default=SwarmState.PENDING, init=False)

    async def _private_ip(self, host: str) -> str:
        server = await self.records.read(host)
        ip = server.get("private_ipv4")
        if not ip:
            raise PersistenceError(f"Record for {host} has no private address")
        return ip

    async def discover_leader(self, hosts: Sequence[str]) -> tuple[str, bool]:
        """Return (leader, needs_init).

        An existing marker wins; otherwise the first manager in ``hosts``.
        """
        marker = await self.records.read_leader()
        if marker is not None:
            return marker, False
        for host in hosts:
            if self.config.role_of(host) is SwarmRole.MANAGER:
                return host, True
        raise ValidationError("At least one swarm manager must be provisioned")

    async def fetch_tokens(self, leader: str) -> SwarmTokens:
        worker = await self.shell.check(leader, "docker swarm join-token -q worker")
        manager = await self.shell.check(leader, "docker swarm join-token -q manager")
        return SwarmTokens(worker=worker.stdout.strip(), manager=manager.stdout.strip())

    async def run(self, hosts: Sequence[str]) -> SwarmResult:
        """Bring ``hosts`` into the swarm; the first error halts the protocol."""
        try:
            result = await self._run(hosts)
        except BaseException:
            self.state = SwarmState.FAILED
            raise
        self.state = SwarmState.COMPLETE
        return result

    async def _run(self, hosts: Sequence[str]) -> SwarmResult:
        if self.wait_for_boot:
            await for_each(hosts, lambda host: wait_for_boot_marker(
                self.shell,
                host,
                interval=self.poll_interval,
                max_attempts=self.poll_attempts,
                settle_delay=self.settle_delay,
            ))

        leader, needs_init = await self.discover_leader(hosts)
        leader_ip = await self._private_ip(leader)

        if needs_init:
            log.info("Initializing swarm on {leader}", leader=leader)
            await self.shell.check(leader, init_command(leader_ip), "initialize Docker swarm")
            await self.records.write_leader(leader)
        else:
            log.info("Using existing swarm leader {leader}", leader=leader)

        tokens = await self.fetch_tokens(leader)

        joined: list[str] = []
        skipped: list[str] = []

        async def _join(host: str) -> None:
            ip = await self._private_ip(host)
            if ip == leader_ip:
                skipped.append(host)
                return
            command = join_command(ip, tokens.for_role(self.config.role_of(host)), leader_ip)
            await asyncio.sleep(self.join_pause)
            await self.shell.check(host, command, "join Docker swarm")
            log.info("{host} joined the swarm", host=host)
            joined.append(host)

        await for_each(hosts, _join)
        return SwarmResult(
            leader=leader,
            initialized=needs_init,
            joined=tuple(joined),
            skipped=tuple(skipped),
        )

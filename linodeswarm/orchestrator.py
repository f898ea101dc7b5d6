"""Orchestrator - the resources one run shares.

Owns exactly one gateway, one record store and one SSH multiplexer, so
every phase of a run sees the same cached records and the same
connections. Nothing here is a module-level singleton.

Example:
    async with Orchestrator(load_config()) as orch:
        report = await provision_cluster(orch)
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from .bootstrap.openssl import OpenSSL
from .config import ClusterConfig
from .infra.protocols import RemoteShell
from .infra.ssh import SSHMultiplexer
from .providers.linode.client import LinodeGateway
from .records import RecordStore


class Orchestrator:
    """Per-run bundle of config, gateway, records, shell and openssl."""

    def __init__(
        self,
        config: ClusterConfig,
        *,
        gateway: LinodeGateway | None = None,
        records: RecordStore | None = None,
        shell: RemoteShell | None = None,
        openssl: OpenSSL | None = None,
    ) -> None:
        self.config = config
        self.records = records or RecordStore(config.db_dir)
        self.gateway = gateway or LinodeGateway(config.api_key, url=config.api_url)
        self.shell: RemoteShell = shell or SSHMultiplexer(self.records)
        self.openssl = openssl or OpenSSL.from_env()

    async def __aenter__(self) -> Orchestrator:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close SSH connections first, then the HTTP session."""
        try:
            await self.shell.close()
        finally:
            await self.gateway.close()
        logger.bind(component="orchestrator").debug("Run resources released")

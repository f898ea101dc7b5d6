"""Protocol definitions for the bootstrap protocols.

The certificate and swarm protocols only need to run commands and push
files to a host by name. SSHMultiplexer is the production implementation.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from linodeswarm.infra.ssh import CommandResult


@runtime_checkable
class RemoteShell(Protocol):
    """Command execution and file upload addressed by host name.

    Usage:
        result = await shell.exec_command("dev100", "cat /root/ss_completion.txt")
        await shell.check("dev100", "systemctl restart docker", "restart docker")
    """

    async def exec_command(self, host: str, command: str) -> CommandResult:
        """Execute a command and return its captured result.

        Raises:
            ConnectError: The host could not be reached.
        """
        ...

    async def check(self, host: str, command: str, what: str | None = None) -> CommandResult:
        """Execute a command, raising CommandError on non-zero exit."""
        ...

    async def upload(self, host: str, local_path: Path | str, remote_path: str) -> None:
        """Copy a local file to the host."""
        ...

    async def close(self) -> None:
        """Release every open connection."""
        ...

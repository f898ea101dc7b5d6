"""AsyncSSH connection multiplexer.

One connection per host, opened lazily from the address and root password
in the record store and shared by every caller. A handle is in exactly one
state: pending while connecting, ready, or failed. Failed handles are
evicted so the next ``fetch`` starts from scratch, which is what the boot
poll relies on while a VM is still coming up.

Example:
    >>> ssh = SSHMultiplexer(records)
    >>> result = await ssh.exec_command("dev100", "docker info")
    >>> await ssh.upload("dev100", "scratch/dev100/server-cert.pem", "/root/scert/server-cert.pem")
    >>> await ssh.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import Coroutine
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

import asyncssh
from loguru import logger

from linodeswarm.constants import SSH_CONNECT_TIMEOUT, SSH_PORT, SSH_USER
from linodeswarm.errors import CommandError, ConnectError, LinodeSwarmError, ValidationError
from linodeswarm.records import RecordStore

# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Fully captured output of one remote command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ConnectionState(StrEnum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def _preview(command: str) -> str:
    first, sep, _ = command.partition("\n")
    return f"{first} (text truncated)" if sep else first


# =============================================================================
# Heredoc framing
# =============================================================================


def heredoc_command(remote_path: str, content: str) -> str:
    """Frame ``content`` as a ``cat >`` heredoc writing ``remote_path``.

    The delimiter is quoted, so the shell performs no expansion, and it is
    regenerated until it does not occur anywhere in the content.
    """
    sentinel = f"EOF_{uuid.uuid4().hex}"
    while sentinel in content:
        sentinel = f"EOF_{uuid.uuid4().hex}"
    body = content if content.endswith("\n") else content + "\n"
    return f"cat > {remote_path} << '{sentinel}'\n{body}{sentinel}"


# =============================================================================
# Host Connection
# =============================================================================


class HostConnection:
    """Multiplexer entry for one host."""

    def __init__(self, host: str) -> None:
        self.host = host
        self.state = ConnectionState.PENDING
        self.error: LinodeSwarmError | None = None
        self._conn: asyncssh.SSHClientConnection | None = None
        self._settled = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._log = logger.bind(component="ssh", host=host)

    def start(self, attempt: Coroutine[Any, Any, None]) -> None:
        """Run the connection attempt that will settle this handle."""
        self._task = asyncio.create_task(attempt)

    async def cancel(self) -> None:
        """Stop a still-running connection attempt."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def resolve(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn
        self.state = ConnectionState.READY
        self._settled.set()

    def fail(self, error: LinodeSwarmError) -> None:
        if self.state is ConnectionState.FAILED:
            return
        self.error = error
        self.state = ConnectionState.FAILED
        if self._conn is not None:
            self._conn.abort()
            self._conn = None
        self._settled.set()

    def _raise_if_failed(self) -> None:
        if self.state is ConnectionState.FAILED:
            assert self.error is not None
            raise self.error

    async def wait_ready(self) -> HostConnection:
        """Wait for the pending attempt; every waiter sees the same outcome."""
        await self._settled.wait()
        self._raise_if_failed()
        return self

    def _require_connection(self) -> asyncssh.SSHClientConnection:
        self._raise_if_failed()
        if self._conn is None:
            raise ConnectError(self.host, "connection not established")
        return self._conn

    async def run(self, command: str) -> CommandResult:
        """Execute ``command`` and capture stdout/stderr in full.

        A failed handle raises immediately without touching the network.
        """
        conn = self._require_connection()
        self._log.info("REMOTE EXEC: {cmd}", cmd=_preview(command))
        try:
            result = await conn.run(command, check=False)
        except (asyncssh.Error, OSError) as e:
            error = ConnectError(self.host, f"exec failed: {e}")
            self.fail(error)
            raise error from e

        return CommandResult(
            stdout=str(result.stdout or ""),
            stderr=str(result.stderr or ""),
            exit_code=result.exit_status if result.exit_status is not None else -1,
        )

    async def write_bytes(self, remote_path: str, content: bytes) -> None:
        """Write binary content to a remote file using SFTP."""
        conn = self._require_connection()
        try:
            async with conn.start_sftp_client() as sftp, sftp.open(remote_path, "wb") as f:
                await f.write(content)
        except asyncssh.SFTPError as e:
            raise CommandError(self.host, f"upload to {remote_path}", None, e.reason) from e
        except (asyncssh.Error, OSError) as e:
            error = ConnectError(self.host, f"sftp failed: {e}")
            self.fail(error)
            raise error from e

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._conn.wait_closed(), timeout=5.0)
            self._conn = None


# =============================================================================
# Multiplexer
# =============================================================================


class SSHMultiplexer:
    """Lazily established, cached SSH connections keyed by host name."""

    def __init__(
        self,
        records: RecordStore,
        *,
        port: int = SSH_PORT,
        username: str = SSH_USER,
        connect_timeout: float = SSH_CONNECT_TIMEOUT,
    ) -> None:
        self._records = records
        self._port = port
        self._username = username
        self._connect_timeout = connect_timeout
        self._handles: dict[str, HostConnection] = {}
        self._log = logger.bind(component="ssh")

    def handle(self, host: str) -> HostConnection | None:
        """Current table entry for ``host``, if any."""
        return self._handles.get(host)

    async def fetch(self, host: str) -> HostConnection:
        """Return the ready connection for ``host``, connecting on first use.

        Raises:
            ConnectError: The host is unreachable or rejected the login.
            PersistenceError: The host's record could not be read.
        """
        handle = self._handles.get(host)
        if handle is None:
            handle = HostConnection(host)
            self._handles[host] = handle
            handle.start(self._connect(handle))
        return await handle.wait_ready()

    def _evict(self, handle: HostConnection, error: LinodeSwarmError) -> None:
        if self._handles.get(handle.host) is handle:
            del self._handles[handle.host]
        handle.fail(error)

    async def _connect(self, handle: HostConnection) -> None:
        host = handle.host
        try:
            server = await self._records.read(host)
            address = server.get("public_ipv4")
            password = server.get("root_pass")
            if not address or not password:
                raise ConnectError(host, "no address or credential in record store")

            self._log.debug("Connecting to {host} at {ip}", host=host, ip=address)
            conn = await asyncssh.connect(
                address,
                port=self._port,
                username=self._username,
                password=password,
                known_hosts=None,
                connect_timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            self._evict(handle, ConnectError(host, "connection attempt cancelled"))
            raise
        except LinodeSwarmError as e:
            self._evict(handle, e)
        except (asyncssh.Error, OSError) as e:
            self._evict(handle, ConnectError(host, str(e) or type(e).__name__))
        except Exception as e:
            self._log.opt(exception=e).debug("{host}: unexpected connect failure", host=host)
            self._evict(handle, ConnectError(host, str(e) or type(e).__name__))
        else:
            self._log.info("{host}: Connection established.", host=host)
            handle.resolve(conn)

    async def exec_command(self, host: str, command: str) -> CommandResult:
        """Run ``command`` on ``host`` over its cached connection."""
        handle = await self.fetch(host)
        try:
            return await handle.run(command)
        except ConnectError as e:
            self._evict(handle, e)
            raise

    async def check(self, host: str, command: str, what: str | None = None) -> CommandResult:
        """Like ``exec_command`` but a non-zero exit raises CommandError."""
        result = await self.exec_command(host, command)
        if not result.ok:
            self._log.warning("{host}: {out}", host=host, out=result.stdout.strip())
            raise CommandError(host, what or _preview(command), result.exit_code, result.stderr)
        return result

    async def upload(
        self,
        host: str,
        local_path: Path | str,
        remote_path: str,
        *,
        transfer: Literal["sftp", "heredoc"] = "sftp",
    ) -> None:
        """Copy a local text file to ``remote_path`` with carriage returns stripped.

        ``sftp`` writes the exact bytes; ``heredoc`` frames the text as a
        shell command on the exec channel.
        """
        data = await asyncio.to_thread(Path(local_path).read_bytes)
        data = data.replace(b"\r", b"")
        self._log.info("{host}:   UPLOAD: {src} -> {dst}", host=host, src=local_path, dst=remote_path)

        handle = await self.fetch(host)
        match transfer:
            case "sftp":
                try:
                    await handle.write_bytes(remote_path, data)
                except ConnectError as e:
                    self._evict(handle, e)
                    raise
            case "heredoc":
                try:
                    text = data.decode()
                except UnicodeDecodeError as e:
                    raise ValidationError(f"{local_path} is not UTF-8 text: {e}") from e
                await self.check(
                    host,
                    heredoc_command(remote_path, text),
                    f"upload to {remote_path}",
                )

    async def close(self) -> None:
        """Close every open connection and clear the table."""
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            await handle.cancel()
            await handle.close()

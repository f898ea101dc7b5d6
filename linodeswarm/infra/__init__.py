"""Internal machinery: HTTP, SSH, sequential pipeline."""

from .http import HttpClient, HttpError
from .pipeline import for_each
from .protocols import RemoteShell
from .ssh import (
    CommandResult,
    ConnectionState,
    HostConnection,
    SSHMultiplexer,
    heredoc_command,
)

__all__ = [
    "HttpClient",
    "HttpError",
    "for_each",
    "RemoteShell",
    "CommandResult",
    "ConnectionState",
    "HostConnection",
    "SSHMultiplexer",
    "heredoc_command",
]

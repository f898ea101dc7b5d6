"""Error taxonomy for linodeswarm.

Every failure that aborts a provisioning phase is one of these. They are
reported as exceptions, never as a process exit; only the CLI turns them
into an exit code.
"""

from __future__ import annotations


class LinodeSwarmError(Exception):
    """Base class for all linodeswarm failures."""


class ApiError(LinodeSwarmError):
    """The control plane reported an application-level error.

    Fatal for the whole run: provisioning state is ambiguous afterwards.
    """

    def __init__(self, action: str, errors: list[dict[str, object]] | str) -> None:
        self.action = action
        self.errors = errors
        super().__init__(f"API action '{action}' failed: {errors}")


class ConnectError(LinodeSwarmError):
    """Remote shell unreachable or rejected."""

    def __init__(self, host: str, reason: str) -> None:
        self.host = host
        self.reason = reason
        super().__init__(f"{host}: SSH connection failed: {reason}")


class CommandError(LinodeSwarmError):
    """Remote command returned a non-zero exit code."""

    def __init__(
        self,
        host: str,
        what: str,
        exit_code: int | None,
        stderr: str = "",
    ) -> None:
        self.host = host
        self.what = what
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"{host}: {what} failed (exit {exit_code}): {stderr.strip()}")


class PersistenceError(LinodeSwarmError):
    """A record file could not be read or written."""


class ValidationError(LinodeSwarmError):
    """Operator input or configuration is invalid; raised before any mutation."""


class CatalogError(ValidationError):
    """A named catalog resource (plan, datacenter, image...) does not exist."""

    def __init__(self, kind: str, label: str) -> None:
        self.kind = kind
        self.label = label
        super().__init__(f"Linode {kind} not found: {label}")


class CertificateError(LinodeSwarmError):
    """Local openssl invocation failed."""

    def __init__(self, operation: str, exit_code: int | None, stderr: str = "") -> None:
        self.operation = operation
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"OpenSSL '{operation}' failed (exit {exit_code}): {stderr.strip()}")


class JobTimeoutError(LinodeSwarmError):
    """A provider job did not reach a terminal state within the attempt budget."""

    def __init__(self, linode_id: int, job_id: int, attempts: int) -> None:
        self.linode_id = linode_id
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(
            f"Job {job_id} on Linode {linode_id} not finished after {attempts} polls"
        )


class BootTimeoutError(LinodeSwarmError):
    """A host never produced its boot-completion marker."""

    def __init__(self, host: str, attempts: int) -> None:
        self.host = host
        self.attempts = attempts
        super().__init__(f"{host}: boot marker not found after {attempts} polls")


__all__ = [
    "ApiError",
    "BootTimeoutError",
    "CatalogError",
    "CertificateError",
    "CommandError",
    "ConnectError",
    "JobTimeoutError",
    "LinodeSwarmError",
    "PersistenceError",
    "ValidationError",
]

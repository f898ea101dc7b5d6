"""Wait for a host's provisioning script to drop its completion marker."""

from __future__ import annotations

import asyncio

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from linodeswarm.constants import (
    BOOT_MARKER_PATH,
    BOOT_POLL_INTERVAL,
    BOOT_POLL_MAX_ATTEMPTS,
    BOOT_SETTLE_DELAY,
)
from linodeswarm.errors import BootTimeoutError, ConnectError
from linodeswarm.infra.protocols import RemoteShell


class _NotReadyError(Exception):
    """Marker missing or SSH not up yet - poll again."""


async def wait_for_boot_marker(
    shell: RemoteShell,
    host: str,
    *,
    marker: str = BOOT_MARKER_PATH,
    interval: float = BOOT_POLL_INTERVAL,
    max_attempts: int = BOOT_POLL_MAX_ATTEMPTS,
    settle_delay: float = BOOT_SETTLE_DELAY,
) -> None:
    """Poll ``cat <marker>`` until it succeeds.

    An unreachable host counts as "not ready yet"; the multiplexer has
    already evicted the failed handle so the next poll reconnects.

    Raises:
        BootTimeoutError: The marker never appeared within ``max_attempts``.
    """
    log = logger.bind(component="boot", host=host)

    @retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(_NotReadyError),
        reraise=True,
    )
    async def poll() -> None:
        try:
            result = await shell.exec_command(host, f"cat {marker}")
        except ConnectError as e:
            log.info("{host}: Polling for completion (NO SSH YET: {reason})", host=host, reason=e.reason)
            raise _NotReadyError() from e
        if not result.ok:
            log.info("{host}: Polling for completion", host=host)
            raise _NotReadyError()

    try:
        await poll()
    except _NotReadyError:
        raise BootTimeoutError(host, max_attempts) from None

    log.info("{host}: Stack Script completed, proceeding...", host=host)
    if settle_delay > 0:
        await asyncio.sleep(settle_delay)

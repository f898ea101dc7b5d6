"""Polling of provider-side jobs (disk builds, boots).

The poller never decides what "done" means: ``on_tick`` sees every job
snapshot and returns True to stop. Polling is bounded; a job that never
finishes surfaces as JobTimeoutError instead of stalling the run.
"""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from linodeswarm.constants import JOB_POLL_INTERVAL, JOB_POLL_MAX_ATTEMPTS
from linodeswarm.errors import JobTimeoutError

from .client import LinodeGateway
from .types import JobResponse


class _JobPendingError(Exception):
    """Job not finished yet - poll again."""


async def monitor_job(
    gateway: LinodeGateway,
    linode_id: int,
    job_id: int,
    on_tick: Callable[[JobResponse], bool],
    *,
    interval: float = JOB_POLL_INTERVAL,
    max_attempts: int = JOB_POLL_MAX_ATTEMPTS,
) -> JobResponse:
    """Query ``linode.job.list`` until ``on_tick`` accepts the job.

    Returns:
        The job snapshot ``on_tick`` accepted.

    Raises:
        JobTimeoutError: ``max_attempts`` queries without acceptance.
        ApiError: The status query itself failed (not retried).
    """

    @retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(_JobPendingError),
        reraise=True,
    )
    async def check() -> JobResponse:
        answer = await gateway.call("linode.job.list", {"LinodeID": linode_id, "JobID": job_id})
        jobs = answer["DATA"] or []
        if not jobs or not on_tick(jobs[0]):
            raise _JobPendingError()
        return jobs[0]

    try:
        return await check()
    except _JobPendingError:
        raise JobTimeoutError(linode_id, job_id, max_attempts) from None


def host_succeeded(job: JobResponse) -> bool:
    """Boot policy: the job is done once HOST_SUCCESS equals one."""
    return str(job.get("HOST_SUCCESS", "")) == "1"


async def wait_for_boot(
    gateway: LinodeGateway,
    host: str,
    linode_id: int,
    job_id: int,
    *,
    interval: float = JOB_POLL_INTERVAL,
    max_attempts: int = JOB_POLL_MAX_ATTEMPTS,
) -> str:
    """Wait out a ``linode.boot`` job and return its finish time."""
    log = logger.bind(component="jobs", host=host)

    def on_tick(job: JobResponse) -> bool:
        if host_succeeded(job):
            return True
        log.info("Waiting on {host} to finish boot.", host=host)
        return False

    job = await monitor_job(
        gateway, linode_id, job_id, on_tick, interval=interval, max_attempts=max_attempts,
    )
    finished = job.get("HOST_FINISH_DT", "")
    log.info("{host}: Boot finished at {when}", host=host, when=finished)
    return finished

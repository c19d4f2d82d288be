"""Fixed-interval background jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from structlog.typing import FilteringBoundLogger


async def run_every(
    interval: float,
    job: Callable[[], Awaitable[object]],
    *,
    logger: FilteringBoundLogger,
    name: str,
) -> None:
    """Run a job every `interval` seconds until cancelled.

    A failing run is logged and the schedule continues.

    Args:
        interval: Seconds between the end of one run and the next start.
        job: The coroutine function to run.
        logger: Logger for job failures.
        name: Job name used in log events.
    """
    while True:
        await anyio.sleep(interval)
        try:
            _ = await job()
        except Exception as e:  # noqa: BLE001
            logger.error("scheduled_job_failed", job=name, error=str(e))

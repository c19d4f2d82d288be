"""HTTP health probing for managed services."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio
import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from devplane.exceptions import HealthCheckError

from ._models import HealthSummary

if TYPE_CHECKING:
    from collections.abc import Iterable

    from devplane.config import ServiceDefinition
    from devplane.context import ControlContext

DEFAULT_PROBE_TIMEOUT = 3.0
FINAL_CHECK_RETRIES = 3


class _NotReady(Exception):  # noqa: N818
    """A single probe did not return HTTP 200."""


@final
class HealthProber:
    """Polls service health endpoints with bounded retries.

    The per-attempt request timeout is independent of the retry interval.
    A probe sequence ends early when the service process has already
    exited, since nothing will ever answer.
    """

    __slots__ = ("_client", "_context", "_timeout")

    def __init__(
        self,
        context: ControlContext,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        """Initialize the prober.

        Args:
            context: Run context used for exit detection and logging.
            client: HTTP client to probe with. Defaults to a new client.
            timeout: Per-attempt request timeout in seconds.
        """
        self._context = context
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def probe(self, url: str) -> bool:
        """Issue a single GET and return whether it answered HTTP 200."""
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except httpx.HTTPError:
            return False
        return response.status_code == httpx.codes.OK

    async def _attempt(self, service_id: str, url: str, attempt: int) -> None:
        if self._context.has_exited(service_id):
            msg = f"Service '{service_id}' exited before becoming healthy: {url}"
            raise HealthCheckError(
                msg, service_id=service_id, url=url, attempts=attempt
            )
        if not await self.probe(url):
            raise _NotReady(url)

    async def wait_for_health_check(
        self,
        service_id: str,
        definition: ServiceDefinition,
        max_retries: int | None = None,
    ) -> None:
        """Wait until the service answers its health endpoint.

        Args:
            service_id: Roster id of the service.
            definition: The service definition.
            max_retries: Maximum attempts. Defaults to the service's
                performance hints.

        Raises:
            HealthCheckError: If every attempt failed or the
                process exited while probing.
        """
        url = definition.health_url
        retries = max_retries or definition.performance.health_retries
        interval = definition.performance.health_interval
        attempt = 0

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_NotReady),
            stop=stop_after_attempt(retries),
            wait=wait_fixed(interval),
            sleep=anyio.sleep,
        )
        try:
            async for attempt_context in retrying:
                with attempt_context:
                    attempt = attempt_context.retry_state.attempt_number
                    await self._attempt(service_id, url, attempt)
        except RetryError as e:
            msg = f"Health check failed after {retries} attempts: {url}"
            raise HealthCheckError(
                msg,
                service_id=service_id,
                url=url,
                attempts=retries,
                cause=e.last_attempt.exception(),
            ) from e

        self._context.logger.debug(
            "health_check_passed", service=service_id, url=url, attempts=attempt
        )

    async def final_health_check(
        self,
        service_ids: Iterable[str] | None = None,
        *,
        max_retries: int = FINAL_CHECK_RETRIES,
    ) -> HealthSummary:
        """Re-probe running services to produce a pass/fail summary.

        Failures are reported in the summary and never raised.

        Args:
            service_ids: Services to probe. Defaults to every service
                with a supervised process.
            max_retries: Maximum attempts per service.

        Returns:
            The summary, with ids in probe order.
        """
        targets = list(self._context.processes if service_ids is None else service_ids)
        outcomes: dict[str, bool] = {}

        async def check(service_id: str) -> None:
            definition = self._context.definition(service_id)
            try:
                await self.wait_for_health_check(
                    service_id, definition, max_retries=max_retries
                )
            except HealthCheckError as e:
                self._context.logger.warning(
                    "final_health_check_failed", service=service_id, error=str(e)
                )
                outcomes[service_id] = False
            else:
                outcomes[service_id] = True

        async with anyio.create_task_group() as tg:
            for service_id in targets:
                tg.start_soon(check, service_id)

        summary = HealthSummary()
        for service_id in targets:
            if outcomes.get(service_id):
                summary.passed.append(service_id)
            else:
                summary.failed.append(service_id)
        self._context.logger.info(
            "final_health_check",
            passed=len(summary.passed),
            total=summary.total,
        )
        return summary

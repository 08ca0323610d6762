"""Bounded polling until tracked resources report that they are ready."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
import logging

from update_controller.exceptions import ApiServerException, ReadinessTimeoutError
from update_controller.manifest import NamedResource, ResourceStatus

from .client import ResourceClient

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_INTERVAL_SECONDS",
    "DEFAULT_TIMEOUT_SECONDS",
    "ReadinessSummary",
    "ReadinessWaiter",
    "check_resources",
]

DEFAULT_INTERVAL_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 600.0


@dataclass
class ReadinessSummary:
    """Readiness of all tracked resources at a single poll."""

    ready: list[str] = field(default_factory=list)
    """Resources that are ready."""

    lagging: dict[str, str] = field(default_factory=dict)
    """Resources that are not ready yet, with the reason."""

    @property
    def all_ready(self) -> bool:
        """True if no tracked resource is lagging."""
        return not self.lagging

    @property
    def summary_message(self) -> str:
        """Return a human-readable summary of the readiness."""
        if self.all_ready:
            return f"All {len(self.ready)} resources ready."
        lagging = [f"{name} ({reason})" for name, reason in self.lagging.items()]
        total = len(self.ready) + len(self.lagging)
        return f"Ready {len(self.ready)}/{total}, waiting on: {lagging}"


ReadinessCheck = Callable[[], Awaitable[ReadinessSummary]]


async def check_resources(
    client: ResourceClient, resource_ids: Sequence[NamedResource]
) -> ReadinessSummary:
    """Read each resource once and evaluate whether it is ready.

    A resource is ready when the controller has observed its latest generation
    and its Ready condition is true.
    """
    summary = ReadinessSummary()
    for resource_id in resource_ids:
        try:
            doc = await client.get(resource_id)
        except ApiServerException as err:
            raise ApiServerException(
                f"Checking readiness of {resource_id}: {err}"
            ) from err
        status = ResourceStatus.parse_doc(doc)
        if status.ready:
            summary.ready.append(str(resource_id))
        else:
            summary.lagging[str(resource_id)] = str(status)
    return summary


class ReadinessWaiter:
    """Poll a readiness check at a fixed interval until it passes or times out.

    The first check happens immediately. Errors raised by the check abort the
    wait and are not retried.
    """

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize ReadinessWaiter."""
        self._interval = interval
        self._timeout = timeout

    async def wait(self, check: ReadinessCheck) -> ReadinessSummary:
        """Wait until every tracked resource is ready at the same poll.

        Raises:
            ReadinessTimeoutError: With the lagging resources of the last poll.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        while True:
            summary = await check()
            _LOGGER.debug("Readiness: %s", summary.summary_message)
            if summary.all_ready:
                return summary
            if (remaining := deadline - loop.time()) <= 0:
                _LOGGER.warning("Readiness timed out: %s", summary.summary_message)
                raise ReadinessTimeoutError(self._timeout, list(summary.lagging))
            await asyncio.sleep(min(self._interval, remaining))

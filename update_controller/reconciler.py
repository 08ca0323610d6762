"""The reconciliation loop that drives updates onto a deployment target.

Each cycle asks the coordinator for an update. When there is one, the backend
decodes and applies it, the loop waits for the target to become ready and
then records the new version. Progress of the update is reported back to the
coordinator along the way:

    CheckingUpdate -> NoUpdate
    CheckingUpdate -> Decoding -> Applying -> AwaitingReady -> Committing

A failure in any stage moves the cycle to ReportingError, the current version
stays unchanged and the next cycle starts over.
"""

import asyncio
from dataclasses import dataclass, field, replace
from enum import StrEnum
from functools import partial
import logging
from typing import Any

from .backend.base import ConvergenceBackend
from .context import collect_timings, stage_timer
from .coordinator import Coordinator, Progress, UpdateInfo
from .exceptions import CoordinatorException, UpdateControllerException
from .kube.readiness import ReadinessWaiter
from .version import strip_v

__all__ = [
    "CycleState",
    "CycleOutcome",
    "ReconcilerState",
    "CycleResult",
    "ReconciliationLoop",
]

_LOGGER = logging.getLogger(__name__)


class CycleState(StrEnum):
    """The stage of the current reconciliation cycle."""

    IDLE = "Idle"
    CHECKING_UPDATE = "CheckingUpdate"
    NO_UPDATE = "NoUpdate"
    DECODING = "Decoding"
    APPLYING = "Applying"
    AWAITING_READY = "AwaitingReady"
    COMMITTING = "Committing"
    REPORTING_ERROR = "ReportingError"


class CycleOutcome(StrEnum):
    """How a reconciliation cycle ended."""

    NO_UPDATE = "no_update"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class ReconcilerState:
    """Runtime state owned by the reconciliation loop."""

    cluster_id: str
    """Identity of the deployment target reported to the coordinator."""

    current_version: str
    """The version installed on the target."""

    committed_version: str | None = None
    """The version committed by a successful cycle of this process."""

    state: CycleState = CycleState.IDLE
    """The stage of the current cycle."""


@dataclass(frozen=True)
class CycleResult:
    """The result of a single reconciliation cycle."""

    outcome: CycleOutcome
    """How the cycle ended."""

    version: str = ""
    """The version offered by the coordinator, if any."""

    error: str | None = None
    """The error that failed the cycle."""

    timings: dict[str, float] = field(default_factory=dict)
    """Seconds spent in each stage of the cycle."""


class ReconciliationLoop:
    """Poll the coordinator and converge the backend onto new versions."""

    def __init__(
        self,
        coordinator: Coordinator,
        backend: ConvergenceBackend[Any, Any],
        state: ReconcilerState,
        interval: float,
        waiter: ReadinessWaiter | None = None,
    ) -> None:
        """Initialize ReconciliationLoop.

        Args:
            coordinator: Client for the update coordinator.
            backend: The deployment target to converge.
            state: Initial runtime state, mutated only by this loop.
            interval: Seconds to wait after a cycle before the next one.
            waiter: Polls the backend for readiness after an update.
        """
        self._coordinator = coordinator
        self._backend = backend
        self._state = state
        self._interval = interval
        self._waiter = waiter or ReadinessWaiter()
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def state(self) -> ReconcilerState:
        """The runtime state of the loop."""
        return self._state

    @property
    def running(self) -> bool:
        """True while `run` is in progress."""
        return self._running

    def _transition(self, state: CycleState) -> None:
        _LOGGER.debug("Cycle state %s -> %s", self._state.state, state)
        self._state.state = state

    async def _report(self, progress: Progress) -> None:
        try:
            await self._coordinator.report_progress(progress)
        except CoordinatorException as err:
            _LOGGER.warning("Unable to report progress %s: %s", progress, err)

    async def _update(self, info: UpdateInfo) -> None:
        _LOGGER.info(
            "Update available: %s -> %s", self._state.current_version, info.version
        )
        await self._report(Progress.DOWNLOAD_STARTED)

        self._transition(CycleState.DECODING)
        with stage_timer("decode"):
            plan = await self._backend.decode(info)

        self._transition(CycleState.APPLYING)
        with stage_timer("apply"):
            touched = await self._backend.apply(plan)
        await self._report(Progress.DOWNLOAD_FINISHED)
        await self._report(Progress.INSTALLATION_STARTED)

        self._transition(CycleState.AWAITING_READY)
        with stage_timer("ready"):
            await self._waiter.wait(partial(self._backend.check_ready, touched))
        await self._report(Progress.INSTALLATION_FINISHED)
        await self._report(Progress.UPDATE_COMPLETE)

        self._transition(CycleState.COMMITTING)
        version = strip_v(info.version)
        self._state.current_version = version
        self._state.committed_version = version
        self._coordinator.set_instance_version(version)
        _LOGGER.info("Updated to version %s", version)

    async def _cycle(self) -> CycleResult:
        self._transition(CycleState.CHECKING_UPDATE)
        try:
            with stage_timer("check"):
                info = await self._coordinator.check_for_update()
        except CoordinatorException as err:
            self._transition(CycleState.REPORTING_ERROR)
            _LOGGER.error("Checking for updates failed: %s", err)
            await self._report(Progress.ERROR)
            return CycleResult(CycleOutcome.FAILED, error=str(err))

        if not info.has_update:
            self._transition(CycleState.NO_UPDATE)
            _LOGGER.info(
                "No update available, current version %s",
                self._state.current_version,
            )
            try:
                with stage_timer("reassert"):
                    await self._backend.reassert(self._state.committed_version)
            except UpdateControllerException as err:
                self._transition(CycleState.REPORTING_ERROR)
                _LOGGER.error("Re-asserting version failed: %s", err)
                await self._report(Progress.ERROR)
                return CycleResult(CycleOutcome.FAILED, error=str(err))
            return CycleResult(CycleOutcome.NO_UPDATE)

        try:
            await self._update(info)
        except UpdateControllerException as err:
            self._transition(CycleState.REPORTING_ERROR)
            _LOGGER.error("Update to version %s failed: %s", info.version, err)
            await self._report(Progress.ERROR)
            return CycleResult(
                CycleOutcome.FAILED, version=info.version, error=str(err)
            )
        return CycleResult(CycleOutcome.UPDATED, version=info.version)

    async def run_once(self) -> CycleResult:
        """Run a single reconciliation cycle.

        Errors of the update are reported and returned in the result. Only
        unexpected errors are raised.
        """
        with collect_timings() as timings:
            try:
                result = await self._cycle()
            finally:
                self._transition(CycleState.IDLE)
        return replace(result, timings=dict(timings))

    async def run(self) -> None:
        """Run cycles at a fixed interval until `stop` is called."""
        if self._running:
            raise RuntimeError("Reconciliation loop is already running")
        self._running = True
        _LOGGER.info(
            "Starting reconciliation loop for %s every %ss",
            self._state.cluster_id,
            self._interval,
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_once()
                except Exception:  # pylint: disable=broad-except
                    _LOGGER.exception("Unexpected error in reconciliation cycle")
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self._interval
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
            self._stop_event.clear()
        _LOGGER.info("Reconciliation loop stopped")

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        _LOGGER.debug("Stopping reconciliation loop")
        self._stop_event.set()

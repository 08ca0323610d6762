"""Interface implemented by each kind of deployment target."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from update_controller.coordinator import UpdateInfo
from update_controller.kube.readiness import ReadinessSummary

__all__ = ["ConvergenceBackend"]

_PlanT = TypeVar("_PlanT")
_T = TypeVar("_T")


class ConvergenceBackend(ABC, Generic[_PlanT, _T]):
    """Converges a deployment target onto the version of an update.

    An update is first decoded into a plan of the desired state. Applying the
    plan returns handles to everything it touched, which are then passed back
    to `check_ready` until the target reports that it converged.
    """

    name: str = ""

    @abstractmethod
    async def decode(self, info: UpdateInfo) -> _PlanT:
        """Build the desired state of the target from the update."""

    @abstractmethod
    async def apply(self, plan: _PlanT) -> list[_T]:
        """Push the desired state to the target."""

    @abstractmethod
    async def check_ready(self, touched: list[_T]) -> ReadinessSummary:
        """Evaluate once whether the touched objects have converged."""

    async def reassert(self, version: str | None) -> None:
        """Correct drift from the last committed version.

        Called on cycles without an update. The default does nothing.
        """

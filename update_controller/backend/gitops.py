"""Backend that converges a cluster through Flux custom resources.

An update is decoded into a `DeploymentSpec` which is applied to the cluster.
Flux then pulls the new revision and reports readiness on each object.
"""

import logging

from update_controller.coordinator import Coordinator, UpdateInfo
from update_controller.descriptor import (
    DescriptorFormat,
    decode_query_descriptor,
    decode_structured_descriptor,
)
from update_controller.kube.apply import (
    create_or_update,
    ensure_namespace,
    patch_or_create,
)
from update_controller.kube.client import ResourceClient
from update_controller.kube.readiness import ReadinessSummary, check_resources
from update_controller.manifest import DeploymentSpec, NamedResource
from update_controller.version import strip_v

from .base import ConvergenceBackend

__all__ = ["GitOpsBackend"]

_LOGGER = logging.getLogger(__name__)


class GitOpsBackend(ConvergenceBackend[DeploymentSpec, NamedResource]):
    """Apply Flux sources, Kustomizations and HelmReleases to a cluster."""

    name = "gitops"

    def __init__(
        self,
        client: ResourceClient,
        coordinator: Coordinator,
        descriptor_format: DescriptorFormat = DescriptorFormat.QUERY,
    ) -> None:
        """Initialize GitOpsBackend."""
        self._client = client
        self._coordinator = coordinator
        self._descriptor_format = descriptor_format
        self._last_applied: DeploymentSpec | None = None
        self._applied: dict[str, DeploymentSpec] = {}

    @property
    def last_applied(self) -> DeploymentSpec | None:
        """The most recently applied deployment spec."""
        return self._last_applied

    async def decode(self, info: UpdateInfo) -> DeploymentSpec:
        if self._descriptor_format == DescriptorFormat.QUERY:
            plan = decode_query_descriptor(info.url)
        else:
            content = await self._coordinator.fetch_descriptor(info)
            plan = decode_structured_descriptor(content, info.version)
        plan.version = strip_v(info.version)
        return plan

    async def apply(self, plan: DeploymentSpec) -> list[NamedResource]:
        """Apply every object of the spec in order, returning what was touched."""
        _LOGGER.info(
            "Applying %s",
            ", ".join(str(resource_id) for resource_id in plan.resource_ids),
        )
        for namespace in plan.namespaces:
            await ensure_namespace(self._client, namespace)
        for obj in plan.resources:
            await create_or_update(self._client, obj)
        for release in plan.releases:
            await patch_or_create(self._client, release)
        self._last_applied = plan
        self._applied[plan.version] = plan
        return plan.resource_ids

    async def check_ready(self, touched: list[NamedResource]) -> ReadinessSummary:
        return await check_resources(self._client, touched)

    async def reassert(self, version: str | None) -> None:
        """Re-apply the objects of the committed version.

        Specs applied for versions that were never committed are not pushed
        again.
        """
        if version is None:
            return
        if (plan := self._applied.get(version)) is None:
            _LOGGER.debug("No resources recorded for version %s", version)
            return
        self._applied = {version: plan}
        _LOGGER.debug("Re-applying resources of version %s", version)
        await self.apply(plan)

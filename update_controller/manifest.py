"""Representation of the Flux custom resources managed by the controller.

Objects here describe the desired state that is pushed to the cluster. Each
resource knows how to render itself as a kubernetes document (`to_doc`) so it
can be handed to a `ResourceClient`. Observed state is read back from the
cluster as raw documents and interpreted with `ResourceStatus`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

__all__ = [
    "ResourceType",
    "NamedResource",
    "GitRepositoryRef",
    "GitRepository",
    "HelmRepository",
    "Kustomization",
    "HelmReleaseChart",
    "Condition",
    "ResourceStatus",
    "DeploymentSpec",
]


SOURCE_GROUP = "source.toolkit.fluxcd.io"
SOURCE_VERSION = "v1"
KUSTOMIZE_GROUP = "kustomize.toolkit.fluxcd.io"
KUSTOMIZE_VERSION = "v1"
HELM_GROUP = "helm.toolkit.fluxcd.io"
HELM_VERSION = "v2"

GIT_REPOSITORY = "GitRepository"
HELM_REPOSITORY = "HelmRepository"
KUSTOMIZE_KIND = "Kustomization"
HELM_RELEASE = "HelmRelease"

DEFAULT_NAMESPACE = "flux-system"
DEFAULT_INTERVAL = "5m"
READY_CONDITION = "Ready"


@dataclass(frozen=True)
class ResourceType:
    """Coordinates of a custom resource definition in the API server."""

    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        """The apiVersion string used in documents of this type."""
        return f"{self.group}/{self.version}"


GIT_REPOSITORY_TYPE = ResourceType(
    SOURCE_GROUP, SOURCE_VERSION, "gitrepositories", GIT_REPOSITORY
)
HELM_REPOSITORY_TYPE = ResourceType(
    SOURCE_GROUP, SOURCE_VERSION, "helmrepositories", HELM_REPOSITORY
)
KUSTOMIZATION_TYPE = ResourceType(
    KUSTOMIZE_GROUP, KUSTOMIZE_VERSION, "kustomizations", KUSTOMIZE_KIND
)
HELM_RELEASE_TYPE = ResourceType(
    HELM_GROUP, HELM_VERSION, "helmreleases", HELM_RELEASE
)

RESOURCE_TYPES: dict[str, ResourceType] = {
    rt.kind: rt
    for rt in (
        GIT_REPOSITORY_TYPE,
        HELM_REPOSITORY_TYPE,
        KUSTOMIZATION_TYPE,
        HELM_RELEASE_TYPE,
    )
}


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def resource_type(self) -> ResourceType:
        """The custom resource coordinates for this kind."""
        return RESOURCE_TYPES[self.kind]

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


def _object_doc(
    resource_type: ResourceType, name: str, namespace: str, spec: dict[str, Any]
) -> dict[str, Any]:
    return {
        "apiVersion": resource_type.api_version,
        "kind": resource_type.kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
        },
        "spec": spec,
    }


@dataclass
class BaseManifest(DataClassDictMixin, ABC):
    """Base class for all desired-state custom resources."""

    resource_type: ClassVar[ResourceType]

    name: str
    """The name of the object."""

    namespace: str
    """The namespace that owns the object."""

    @property
    def resource_id(self) -> NamedResource:
        """Identity of this object in the cluster."""
        return NamedResource(self.resource_type.kind, self.namespace, self.name)

    @abstractmethod
    def spec(self) -> dict[str, Any]:
        """Return the spec payload of the object."""

    def to_doc(self) -> dict[str, Any]:
        """Render the object as a kubernetes document."""
        return _object_doc(self.resource_type, self.name, self.namespace, self.spec())

    class Config(BaseConfig):
        omit_none = True


@dataclass
class GitRepositoryRef(DataClassDictMixin):
    """GitRepositoryRef defines the Git ref used for pull and checkout operations."""

    branch: str | None = None
    """The Git branch to checkout."""

    tag: str | None = None
    """The Git tag to checkout."""

    semver: str | None = None
    """The Git tag semver expression."""

    commit: str | None = None
    """The Git commit SHA to checkout."""

    @property
    def empty(self) -> bool:
        """True when no reference field is set."""
        return not (self.branch or self.tag or self.semver or self.commit)

    class Config(BaseConfig):
        omit_none = True


@dataclass
class GitRepository(BaseManifest):
    """GitRepository represents a Git repository source."""

    resource_type: ClassVar[ResourceType] = GIT_REPOSITORY_TYPE

    url: str = ""
    """The URL to the repository."""

    ref: GitRepositoryRef | None = None
    """The Git reference to use for pull and checkout operations."""

    interval: str = DEFAULT_INTERVAL
    """How often the source controller checks the repository."""

    def spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {"interval": self.interval, "url": self.url}
        if self.ref is not None and not self.ref.empty:
            spec["ref"] = self.ref.to_dict()
        return spec


@dataclass
class HelmRepository(BaseManifest):
    """A representation of a flux HelmRepository source."""

    resource_type: ClassVar[ResourceType] = HELM_REPOSITORY_TYPE

    url: str = ""
    """The URL to the repository of helm charts."""

    repo_type: str | None = None
    """The type of the HelmRepository (e.g. `oci`)."""

    interval: str = DEFAULT_INTERVAL
    """How often the source controller checks the repository."""

    def spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {"interval": self.interval, "url": self.url}
        if self.repo_type:
            spec["type"] = self.repo_type
        return spec


@dataclass
class Kustomization(BaseManifest):
    """A flux Kustomization whose spec is supplied verbatim by the descriptor."""

    resource_type: ClassVar[ResourceType] = KUSTOMIZATION_TYPE

    contents: dict[str, Any] = field(default_factory=dict)
    """The Kustomization spec."""

    def spec(self) -> dict[str, Any]:
        return self.contents


@dataclass
class HelmReleaseChart(BaseManifest):
    """The chart reference of a HelmRelease.

    Only the chart template of the release is owned by the controller; the
    rest of the release (values, install options, etc) is left untouched.
    """

    resource_type: ClassVar[ResourceType] = HELM_RELEASE_TYPE

    chart: str = ""
    """The name of the chart within the source."""

    source_kind: str = HELM_REPOSITORY
    """The kind of the sourceRef providing the chart."""

    source_name: str = ""
    """The name of the sourceRef providing the chart."""

    source_namespace: str | None = None
    """The namespace of the sourceRef, defaults to the release namespace."""

    version: str | None = None
    """The chart version, required for HelmRepository sources."""

    def chart_spec(self) -> dict[str, Any]:
        """The `spec.chart.spec` section of the release."""
        chart_spec: dict[str, Any] = {
            "chart": self.chart,
            "sourceRef": {
                "kind": self.source_kind,
                "name": self.source_name,
                "namespace": self.source_namespace or self.namespace,
            },
        }
        if self.source_kind == HELM_REPOSITORY and self.version:
            chart_spec["version"] = self.version
        return chart_spec

    def patch_doc(self) -> dict[str, Any]:
        """Merge patch that points an existing release at the chart."""
        return {"spec": {"chart": {"spec": self.chart_spec()}}}

    def spec(self) -> dict[str, Any]:
        return {
            "interval": DEFAULT_INTERVAL,
            "chart": {"spec": self.chart_spec()},
        }


@dataclass
class Condition(DataClassDictMixin):
    """A status condition reported by a flux controller."""

    type: str
    status: str
    reason: str | None = None
    message: str | None = None

    class Config(BaseConfig):
        omit_none = True


@dataclass
class ResourceStatus:
    """Observed state of a custom resource read back from the cluster."""

    generation: int | None = None
    """The generation of the desired state (`metadata.generation`)."""

    observed_generation: int | None = None
    """The generation last processed by the controller."""

    conditions: list[Condition] = field(default_factory=list)
    """Conditions reported by the controller."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ResourceStatus":
        """Parse the status of a kubernetes resource object."""
        metadata = doc.get("metadata") or {}
        status = doc.get("status") or {}
        conditions = [
            Condition.from_dict(cond)
            for cond in status.get("conditions") or ()
            if "type" in cond and "status" in cond
        ]
        return cls(
            generation=metadata.get("generation"),
            observed_generation=status.get("observedGeneration"),
            conditions=conditions,
        )

    def condition(self, condition_type: str) -> Condition | None:
        """Return the condition of the given type, if reported."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    @property
    def ready(self) -> bool:
        """True if the controller observed the latest spec and reports Ready."""
        if self.generation is None or self.generation != self.observed_generation:
            return False
        condition = self.condition(READY_CONDITION)
        return condition is not None and condition.status == "True"

    def __str__(self) -> str:
        if self.generation != self.observed_generation:
            return (
                f"generation {self.generation} not yet observed "
                f"(observed {self.observed_generation})"
            )
        if (condition := self.condition(READY_CONDITION)) is None:
            return "no Ready condition"
        detail = condition.message or condition.reason or ""
        return f"Ready={condition.status} {detail}".strip()


@dataclass
class DeploymentSpec:
    """The full set of desired objects produced by decoding an update."""

    namespaces: list[str] = field(default_factory=list)
    """Namespaces that must exist before objects are applied."""

    resources: list[GitRepository | HelmRepository | Kustomization] = field(
        default_factory=list
    )
    """Objects replaced wholesale with create-or-update."""

    releases: list[HelmReleaseChart] = field(default_factory=list)
    """HelmReleases whose chart reference is patched in place."""

    version: str = ""
    """The update version the objects belong to, without a leading `v`."""

    @property
    def resource_ids(self) -> list[NamedResource]:
        """Identity of every object touched by this spec, in apply order."""
        return [obj.resource_id for obj in (*self.resources, *self.releases)]

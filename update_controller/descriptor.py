"""Decoding of update descriptors handed out by the coordinator.

The coordinator only hands out an opaque URL for each update. Two encodings of
the desired cluster state are supported:

Query form: the URL points at a git repository and carries the commit, the
target namespace and an inline Kustomization spec as base64 query parameters,
for example:

    https://github.com/example/app?nua_commit=...&nua_namespace=...&nua_kustomize_config=...

This produces a GitRepository pinned to the commit and a Kustomization that
applies it.

Structured form: a YAML document listing packages, each of which is a chart
provided by either a git repository or a helm repository:

    packages:
    - name: app
      chart: ./charts/app
      gitrepo:
        url: https://github.com/example/app
        ref:
          commit: 9ffef196
    - name: db
      chart: postgresql
      version: 12.1.0
      helmrepo:
        url: https://charts.example.com

This produces one source object per package and a patch of the HelmRelease of
the same name so that it uses the chart from that source.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any
from urllib.parse import parse_qs, urlsplit, urlunsplit

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import DescriptorException
from .manifest import (
    DEFAULT_NAMESPACE,
    GIT_REPOSITORY,
    HELM_REPOSITORY,
    DeploymentSpec,
    GitRepository,
    GitRepositoryRef,
    HelmReleaseChart,
    HelmRepository,
    Kustomization,
)
from .version import add_v

__all__ = [
    "DescriptorFormat",
    "GitSource",
    "HelmSource",
    "Package",
    "UpdateConfig",
    "decode_query_descriptor",
    "parse_update_config",
    "decode_structured_descriptor",
]

_LOGGER = logging.getLogger(__name__)

COMMIT_PARAM = "nua_commit"
NAMESPACE_PARAM = "nua_namespace"
KUSTOMIZE_CONFIG_PARAM = "nua_kustomize_config"


class DescriptorFormat(StrEnum):
    """Encoding of the update descriptor used by the GitOps backend."""

    QUERY = "query"
    STRUCTURED = "structured"


def _base64_decode(params: dict[str, list[str]], key: str) -> str:
    """Decode a single base64 encoded query parameter."""
    value = params.get(key, [""])[0]
    if not value:
        raise DescriptorException(f"Descriptor parameter '{key}' is missing or empty")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as err:
        raise DescriptorException(
            f"Descriptor parameter '{key}' is not valid base64: {err}"
        ) from err


def decode_query_descriptor(descriptor_url: str) -> DeploymentSpec:
    """Convert a query form descriptor URL into a GitRepository and Kustomization."""
    parts = urlsplit(descriptor_url)
    if not parts.netloc:
        raise DescriptorException(
            f"Descriptor URL has no repository host: {descriptor_url}"
        )
    params = parse_qs(parts.query)
    commit = _base64_decode(params, COMMIT_PARAM)
    namespace = _base64_decode(params, NAMESPACE_PARAM)
    kustomize_config = _base64_decode(params, KUSTOMIZE_CONFIG_PARAM)
    repo_url = urlunsplit((parts.scheme or "https", parts.netloc, parts.path, "", ""))
    _LOGGER.debug("Update descriptor URL decoded successfully")

    try:
        doc = yaml.safe_load(kustomize_config)
    except yaml.YAMLError as err:
        raise DescriptorException(
            f"Kustomize config is not valid YAML: {err}\n"
            f"Given config:\n{kustomize_config}"
        ) from err
    if not isinstance(doc, dict) or not isinstance(spec := doc.get("spec"), dict):
        raise DescriptorException(
            f"Kustomize config is missing a 'spec' mapping:\n{kustomize_config}"
        )
    source_ref = spec.get("sourceRef")
    if not isinstance(source_ref, dict) or not (name := source_ref.get("name")):
        raise DescriptorException(
            f"Kustomize config is missing spec.sourceRef.name:\n{kustomize_config}"
        )

    return DeploymentSpec(
        namespaces=[namespace],
        resources=[
            GitRepository(
                name=name,
                namespace=namespace,
                url=repo_url,
                ref=GitRepositoryRef(commit=commit),
            ),
            Kustomization(name=name, namespace=namespace, contents=spec),
        ],
    )


@dataclass
class GitSource(DataClassDictMixin):
    """A git repository providing a chart."""

    url: str
    ref: GitRepositoryRef | None = None


@dataclass
class HelmSource(DataClassDictMixin):
    """A helm repository providing a chart."""

    url: str
    repo_type: str | None = field(metadata=field_options(alias="type"), default=None)

    class Config(BaseConfig):
        serialize_by_alias = True
        omit_none = True


@dataclass
class Package(DataClassDictMixin):
    """A chart to install or upgrade as part of an update."""

    name: str
    chart: str
    namespace: str = DEFAULT_NAMESPACE
    gitrepo: GitSource | None = None
    helmrepo: HelmSource | None = None
    version: str | None = None

    def validate(self) -> list[str]:
        """Return a list of problems with the package, empty if valid."""
        errors = []
        if self.gitrepo is not None and self.helmrepo is not None:
            errors.append("must not set both 'gitrepo' and 'helmrepo'")
        elif self.gitrepo is None and self.helmrepo is None:
            errors.append("must set one of 'gitrepo' or 'helmrepo'")
        if self.helmrepo is not None and not self.version:
            errors.append("must set 'version' when using 'helmrepo'")
        return errors

    class Config(BaseConfig):
        omit_none = True


@dataclass
class UpdateConfig:
    """The contents of a structured update descriptor."""

    packages: list[Package]


def _parse_package(index: int, doc: Any) -> tuple[Package | None, list[str]]:
    if not isinstance(doc, dict):
        return None, [f"package #{index} is not a mapping"]
    label = f"package #{index}"
    if isinstance(doc.get("name"), str) and doc["name"]:
        label = f"package '{doc['name']}'"
    missing = [
        key
        for key in ("name", "chart")
        if not isinstance(doc.get(key), str) or not doc[key]
    ]
    if missing:
        return None, [f"{label} missing required field(s): {', '.join(missing)}"]
    version = doc.get("version")
    if version is not None and (not isinstance(version, str) or not version):
        return None, [f"{label} version must be a non-empty string, got {version!r}"]
    try:
        package = Package.from_dict(doc)
    except (MissingField, InvalidFieldValue) as err:
        return None, [f"{label} is invalid: {err}"]
    return package, [f"{label} {error}" for error in package.validate()]


def parse_update_config(content: str) -> UpdateConfig:
    """Parse and validate a structured update descriptor.

    All problems are collected and reported in a single exception rather than
    dropping the invalid packages.
    """
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise DescriptorException(f"Update config is not valid YAML: {err}") from err
    if not isinstance(doc, dict) or not isinstance(doc.get("packages"), list):
        raise DescriptorException("Update config is missing a 'packages' list")
    if not doc["packages"]:
        raise DescriptorException("Update config contains no packages")

    packages: list[Package] = []
    errors: list[str] = []
    for index, package_doc in enumerate(doc["packages"]):
        package, package_errors = _parse_package(index, package_doc)
        errors.extend(package_errors)
        if package is not None and not package_errors:
            packages.append(package)
    if errors:
        raise DescriptorException("Invalid update config: " + "; ".join(errors))
    return UpdateConfig(packages=packages)


def decode_structured_descriptor(content: str, version: str) -> DeploymentSpec:
    """Convert a structured descriptor into source objects and release patches.

    A git source without an explicit ref tracks the tag of the update version.
    """
    config = parse_update_config(content)
    deployment = DeploymentSpec()
    for package in config.packages:
        if package.namespace not in deployment.namespaces:
            deployment.namespaces.append(package.namespace)
        if package.gitrepo is not None:
            ref = package.gitrepo.ref
            if ref is None or ref.empty:
                ref = GitRepositoryRef(tag=add_v(version))
            deployment.resources.append(
                GitRepository(
                    name=package.name,
                    namespace=package.namespace,
                    url=package.gitrepo.url,
                    ref=ref,
                )
            )
            source_kind = GIT_REPOSITORY
        else:
            assert package.helmrepo is not None
            deployment.resources.append(
                HelmRepository(
                    name=package.name,
                    namespace=package.namespace,
                    url=package.helmrepo.url,
                    repo_type=package.helmrepo.repo_type,
                )
            )
            source_kind = HELM_REPOSITORY
        deployment.releases.append(
            HelmReleaseChart(
                name=package.name,
                namespace=package.namespace,
                chart=package.chart,
                source_kind=source_kind,
                source_name=package.name,
                version=package.version,
            )
        )
    return deployment

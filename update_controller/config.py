"""Configuration objects for update-controller.

The configuration is built once at startup and never mutated. Runtime state
such as the current version is owned by the reconciliation loop.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from .descriptor import DescriptorFormat
from .exceptions import ConfigException
from .kube.readiness import DEFAULT_INTERVAL_SECONDS, DEFAULT_TIMEOUT_SECONDS

__all__ = [
    "BackendKind",
    "GitOpsConfig",
    "ContainerConfig",
    "HostConfigConfig",
    "ControllerConfig",
]

DEFAULT_CHANNEL = "stable"
DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_VERSION = "0.0.0"
DEFAULT_STOP_TIMEOUT = 60
DEFAULT_VERSION_KEY = "VERSION"


class BackendKind(StrEnum):
    """The kind of deployment target being converged."""

    GITOPS = "gitops"
    CONTAINER = "container"
    HOST_CONFIG = "host-config"


@dataclass(frozen=True)
class GitOpsConfig:
    """Configuration for the GitOps backend."""

    descriptor_format: DescriptorFormat = DescriptorFormat.QUERY


@dataclass(frozen=True)
class ContainerConfig:
    """Configuration for the Container backend."""

    stop_timeout: int = DEFAULT_STOP_TIMEOUT
    """Grace period in seconds given to a container before it is killed."""


@dataclass(frozen=True)
class HostConfigConfig:
    """Configuration for the HostConfig backend."""

    env_path: Path | None = None
    """The environment file read by the host service manager."""

    version_key: str = DEFAULT_VERSION_KEY
    """The key in the environment file holding the version."""


@dataclass(frozen=True, kw_only=True)
class ControllerConfig:
    """Startup parameters of the controller."""

    server: str
    """URL of the update coordinator."""

    app_id: str
    """Application ID assigned by the coordinator."""

    channel: str = DEFAULT_CHANNEL
    """Channel the instance subscribes to."""

    interval: float = DEFAULT_POLL_INTERVAL
    """Seconds between checks for updates."""

    dev: bool = False
    """Use a random instance identity instead of reading it from the cluster."""

    kubeconfig: Path | None = None
    """Path to the kubeconfig, falls back to in-cluster configuration."""

    backend: BackendKind = BackendKind.GITOPS
    """The deployment target to converge."""

    initial_version: str = DEFAULT_VERSION
    """The version assumed to be installed at startup."""

    readiness_interval: float = DEFAULT_INTERVAL_SECONDS
    """Seconds between readiness checks."""

    readiness_timeout: float = DEFAULT_TIMEOUT_SECONDS
    """Seconds to wait for an update to become ready."""

    gitops: GitOpsConfig = field(default_factory=GitOpsConfig)
    container: ContainerConfig = field(default_factory=ContainerConfig)
    host_config: HostConfigConfig = field(default_factory=HostConfigConfig)

    def __post_init__(self) -> None:
        """Validate the configuration."""
        if not self.server:
            raise ConfigException("The update coordinator URL is required")
        if not self.app_id:
            raise ConfigException("The application ID is required")
        if self.interval <= 0:
            raise ConfigException(f"Invalid poll interval: {self.interval}")
        if self.readiness_interval <= 0 or self.readiness_timeout <= 0:
            raise ConfigException("Readiness interval and timeout must be positive")
        if (
            self.backend == BackendKind.HOST_CONFIG
            and self.host_config.env_path is None
        ):
            raise ConfigException("The environment file path is required")
        if self.container.stop_timeout < 0:
            raise ConfigException(
                f"Invalid container stop timeout: {self.container.stop_timeout}"
            )
        if not self.host_config.version_key:
            raise ConfigException("The environment file version key is required")

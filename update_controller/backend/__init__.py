"""Deployment targets that an update can be converged onto.

Each backend implements `ConvergenceBackend`:

- `GitOpsBackend` applies Flux custom resources to a kubernetes cluster.
- `ContainerBackend` recreates docker containers with a new image tag.
- `HostConfigBackend` rewrites the version in a host environment file.
"""

from .base import ConvergenceBackend
from .container import ContainerBackend
from .gitops import GitOpsBackend
from .host_config import HostConfigBackend

__all__ = [
    "ConvergenceBackend",
    "ContainerBackend",
    "GitOpsBackend",
    "HostConfigBackend",
]

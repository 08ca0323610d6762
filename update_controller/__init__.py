"""update-controller keeps a deployment target on the version published by an
update coordinator.

The controller polls a Nebraska/Omaha coordinator. When a new version is
offered it is converged onto one of the supported targets:

- A kubernetes cluster managed by Flux (`backend.gitops`).
- Docker containers on a host (`backend.container`).
- An environment file read by a host service (`backend.host_config`).

Progress of each update is reported back to the coordinator.
"""

__all__ = [
    "backend",
    "config",
    "coordinator",
    "descriptor",
    "exceptions",
    "kube",
    "manifest",
    "reconciler",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]

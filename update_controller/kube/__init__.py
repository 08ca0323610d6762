"""
The kube module provides access to the cluster objects managed by the controller.

- `ResourceClient` is the abstract CRUD interface used by the GitOps backend.
- `KubernetesResourceClient` talks to a real API server, `InMemoryResourceClient`
  simulates one.
- `ReadinessWaiter` polls resources until flux reports they are ready.
"""

from .client import ResourceClient
from .in_memory import InMemoryResourceClient
from .apply import ensure_namespace, create_or_update, patch_or_create
from .readiness import ReadinessSummary, ReadinessWaiter, check_resources

__all__ = [
    "ResourceClient",
    "InMemoryResourceClient",
    "ensure_namespace",
    "create_or_update",
    "patch_or_create",
    "ReadinessSummary",
    "ReadinessWaiter",
    "check_resources",
]

"""Interface for reading and writing cluster objects."""

from abc import ABC, abstractmethod
from typing import Any

from update_controller.manifest import NamedResource, ResourceType


class ResourceClient(ABC):
    """Abstract CRUD access to namespaces and flux custom resources.

    Objects are exchanged as plain kubernetes documents. Lookups of objects
    that do not exist raise `ObjectNotFoundError`, any other failure raises
    `ApiServerException`.
    """

    @abstractmethod
    async def get_namespace(self, name: str) -> dict[str, Any]:
        """Return the namespace object with the given name."""

    @abstractmethod
    async def create_namespace(self, name: str) -> dict[str, Any]:
        """Create a namespace with the given name."""

    @abstractmethod
    async def get(self, resource_id: NamedResource) -> dict[str, Any]:
        """Return the custom resource with the given identity."""

    @abstractmethod
    async def list_objects(
        self, resource_type: ResourceType, namespace: str
    ) -> list[dict[str, Any]]:
        """Return all custom resources of a type within a namespace."""

    @abstractmethod
    async def create(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Create a custom resource, returning the stored object."""

    @abstractmethod
    async def update(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Replace a custom resource.

        The document must carry the `metadata.resourceVersion` of the object
        it replaces.
        """

    @abstractmethod
    async def patch(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> dict[str, Any]:
        """Apply a JSON merge patch to a custom resource."""

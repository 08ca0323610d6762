"""Module for an in memory ResourceClient.

This simulates the parts of the API server that the controller relies on:
resource versions for optimistic concurrency, generation bumps on spec changes
and JSON merge patches. Status is written by the caller to simulate the flux
controllers, or automatically when `auto_ready` is set.
"""

import copy
import itertools
import logging
from typing import Any
import uuid

from update_controller.exceptions import ApiServerException, ObjectNotFoundError
from update_controller.manifest import (
    READY_CONDITION,
    RESOURCE_TYPES,
    NamedResource,
    ResourceType,
)

from .client import ResourceClient

_LOGGER = logging.getLogger(__name__)


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch (RFC 7386) returning the new value."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def _resource_id(doc: dict[str, Any]) -> NamedResource:
    metadata = doc.get("metadata") or {}
    if doc.get("kind") not in RESOURCE_TYPES:
        raise ApiServerException(f"Unsupported kind: {doc.get('kind')}")
    if not metadata.get("name") or not metadata.get("namespace"):
        raise ApiServerException(f"Object missing name or namespace: {doc}")
    return NamedResource(doc["kind"], metadata["namespace"], metadata["name"])


class InMemoryResourceClient(ResourceClient):
    """In-memory implementation of the ResourceClient interface."""

    def __init__(self, auto_ready: bool = False) -> None:
        """Initialize InMemoryResourceClient.

        Args:
            auto_ready: When set, objects report the latest generation as
                observed and Ready whenever they are read.
        """
        self.auto_ready = auto_ready
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._namespaces: dict[str, dict[str, Any]] = {}
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def add_namespace(self, name: str, uid: str | None = None) -> dict[str, Any]:
        """Add a namespace directly, bypassing the client interface."""
        namespace = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {
                "name": name,
                "uid": uid or str(uuid.uuid4()),
                "resourceVersion": self._next_version(),
            },
        }
        self._namespaces[name] = namespace
        return copy.deepcopy(namespace)

    @property
    def namespaces(self) -> list[str]:
        """Names of all namespaces."""
        return list(self._namespaces)

    def set_status(
        self,
        resource_id: NamedResource,
        *,
        ready: bool,
        observed_generation: int | None = None,
        message: str | None = None,
    ) -> None:
        """Write the status of an object as a flux controller would."""
        if (obj := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"{resource_id}: not found")
        if observed_generation is None:
            observed_generation = obj["metadata"]["generation"]
        condition: dict[str, Any] = {
            "type": READY_CONDITION,
            "status": "True" if ready else "False",
            "reason": "ReconciliationSucceeded" if ready else "Progressing",
        }
        if message:
            condition["message"] = message
        obj["status"] = {
            "observedGeneration": observed_generation,
            "conditions": [condition],
        }

    async def get_namespace(self, name: str) -> dict[str, Any]:
        if (namespace := self._namespaces.get(name)) is None:
            raise ObjectNotFoundError(f"Getting namespace {name}: not found")
        return copy.deepcopy(namespace)

    async def create_namespace(self, name: str) -> dict[str, Any]:
        if name in self._namespaces:
            raise ApiServerException(f"Creating namespace {name}: already exists")
        _LOGGER.debug("Creating namespace %s", name)
        return self.add_namespace(name)

    async def get(self, resource_id: NamedResource) -> dict[str, Any]:
        if (obj := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Getting {resource_id}: not found")
        if self.auto_ready:
            self.set_status(resource_id, ready=True)
        return copy.deepcopy(obj)

    async def list_objects(
        self, resource_type: ResourceType, namespace: str
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(obj)
            for resource_id, obj in sorted(self._objects.items())
            if resource_id.kind == resource_type.kind
            and resource_id.namespace == namespace
        ]

    async def create(self, doc: dict[str, Any]) -> dict[str, Any]:
        resource_id = _resource_id(doc)
        if resource_id in self._objects:
            raise ApiServerException(f"Creating {resource_id}: already exists")
        if resource_id.namespace not in self._namespaces:
            raise ObjectNotFoundError(
                f"Creating {resource_id}: namespace {resource_id.namespace} not found"
            )
        obj = copy.deepcopy(doc)
        obj.pop("status", None)
        obj["metadata"]["generation"] = 1
        obj["metadata"]["resourceVersion"] = self._next_version()
        _LOGGER.debug("Creating object %s", resource_id)
        self._objects[resource_id] = obj
        return copy.deepcopy(obj)

    def _store(self, resource_id: NamedResource, new: dict[str, Any]) -> dict[str, Any]:
        existing = self._objects[resource_id]
        generation = existing["metadata"]["generation"]
        if new.get("spec") != existing.get("spec"):
            generation += 1
        new["metadata"]["generation"] = generation
        new["metadata"]["resourceVersion"] = self._next_version()
        if "status" in existing:
            new["status"] = existing["status"]
        self._objects[resource_id] = new
        return copy.deepcopy(new)

    async def update(self, doc: dict[str, Any]) -> dict[str, Any]:
        resource_id = _resource_id(doc)
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Updating {resource_id}: not found")
        version = doc["metadata"].get("resourceVersion")
        if version != existing["metadata"]["resourceVersion"]:
            raise ApiServerException(
                f"Updating {resource_id}: conflict, resourceVersion {version} "
                f"is not {existing['metadata']['resourceVersion']}"
            )
        _LOGGER.debug("Updating object %s", resource_id)
        new = copy.deepcopy(doc)
        new.pop("status", None)
        return self._store(resource_id, new)

    async def patch(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> dict[str, Any]:
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Patching {resource_id}: not found")
        _LOGGER.debug("Patching object %s", resource_id)
        new = merge_patch(existing, patch)
        new.pop("status", None)
        return self._store(resource_id, new)

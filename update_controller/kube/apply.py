"""Idempotent application of desired objects to the cluster."""

import copy
import logging
from typing import Any

from update_controller.exceptions import ObjectNotFoundError
from update_controller.manifest import BaseManifest, HelmReleaseChart

from .client import ResourceClient

_LOGGER = logging.getLogger(__name__)

__all__ = ["ensure_namespace", "create_or_update", "patch_or_create"]


async def ensure_namespace(client: ResourceClient, name: str) -> None:
    """Create the namespace if it does not already exist."""
    try:
        await client.get_namespace(name)
    except ObjectNotFoundError:
        _LOGGER.info("Creating namespace %s", name)
        await client.create_namespace(name)
        return
    _LOGGER.debug("Namespace %s already exists", name)


async def create_or_update(client: ResourceClient, obj: BaseManifest) -> dict[str, Any]:
    """Create the object, or replace the spec of an existing one.

    The resource version of the existing object is carried over so the update
    is rejected if the object changed in between. Fields of the existing
    object other than the spec are left as they are.
    """
    desired = obj.to_doc()
    try:
        existing = await client.get(obj.resource_id)
    except ObjectNotFoundError:
        _LOGGER.info("Creating %s", obj.resource_id)
        return await client.create(desired)

    updated = copy.deepcopy(existing)
    updated.pop("status", None)
    updated["apiVersion"] = desired["apiVersion"]
    updated["spec"] = desired["spec"]
    updated["metadata"]["resourceVersion"] = existing["metadata"]["resourceVersion"]
    _LOGGER.info("Updating %s", obj.resource_id)
    return await client.update(updated)


async def patch_or_create(
    client: ResourceClient, release: HelmReleaseChart
) -> dict[str, Any]:
    """Point a HelmRelease at a chart without replacing the rest of the release."""
    try:
        return await client.patch(release.resource_id, release.patch_doc())
    except ObjectNotFoundError:
        _LOGGER.info("Creating %s", release.resource_id)
        return await client.create(release.to_doc())

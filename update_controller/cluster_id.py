"""Resolution of the stable identity of the deployment target."""

import logging
import uuid

from .exceptions import ApiServerException, ClusterIdentityException
from .kube.client import ResourceClient

__all__ = ["resolve_cluster_id"]

_LOGGER = logging.getLogger(__name__)

IDENTITY_NAMESPACE = "kube-system"


async def resolve_cluster_id(dev: bool, client: ResourceClient | None = None) -> str:
    """Return the identifier reported to the coordinator as the machine id.

    In dev mode a random identifier is generated on every call. Otherwise the
    UID of the kube-system namespace is used since it lives as long as the
    cluster does.
    """
    if dev:
        cluster_id = str(uuid.uuid4())
        _LOGGER.info("Dev mode, using random cluster id %s", cluster_id)
        return cluster_id
    if client is None:
        raise ClusterIdentityException(
            "A kubernetes client is required to resolve the cluster id"
        )
    try:
        namespace = await client.get_namespace(IDENTITY_NAMESPACE)
    except ApiServerException as err:
        raise ClusterIdentityException(
            f"Unable to read namespace {IDENTITY_NAMESPACE}: {err}"
        ) from err
    if not (uid := (namespace.get("metadata") or {}).get("uid")):
        raise ClusterIdentityException(
            f"Namespace {IDENTITY_NAMESPACE} has no uid"
        )
    _LOGGER.debug("Resolved cluster id %s", uid)
    return str(uid)

"""ResourceClient backed by the kubernetes API server."""

import asyncio
from collections.abc import Callable
import logging
from pathlib import Path
from typing import Any, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException
import urllib3

from update_controller.exceptions import (
    ApiServerException,
    ConfigException,
    ObjectNotFoundError,
)
from update_controller.manifest import RESOURCE_TYPES, NamedResource, ResourceType

from .client import ResourceClient

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

# Avoid hanging a reconciliation cycle on an unreachable API server
_REQUEST_TIMEOUT = 30


def load_api_client(kubeconfig: Path | None) -> client.ApiClient:
    """Build an API client from a kubeconfig file or the in-cluster config.

    A kubeconfig path that does not exist falls back to the in-cluster
    service account configuration.
    """
    cfg = client.Configuration()
    try:
        if kubeconfig is not None and kubeconfig.expanduser().exists():
            _LOGGER.debug("Loading kubeconfig from %s", kubeconfig)
            config.load_kube_config(
                config_file=str(kubeconfig.expanduser()), client_configuration=cfg
            )
        else:
            _LOGGER.debug("Loading in-cluster kubernetes configuration")
            config.load_incluster_config(client_configuration=cfg)
    except config.ConfigException as err:
        raise ConfigException(
            f"Unable to load kubernetes configuration: {err}"
        ) from err
    return client.ApiClient(configuration=cfg)


class KubernetesResourceClient(ResourceClient):
    """Access cluster objects with the kubernetes python client.

    The kubernetes client is synchronous so calls are run in a worker thread
    to keep the event loop responsive, but they are still awaited one at a
    time.
    """

    def __init__(self, api_client: client.ApiClient) -> None:
        """Initialize KubernetesResourceClient."""
        self._api_client = api_client
        self._core_v1 = client.CoreV1Api(api_client=api_client)
        self._custom = client.CustomObjectsApi(api_client=api_client)

    async def _call(
        self, description: str, func: Callable[..., _T], *args: Any, **kwargs: Any
    ) -> _T:
        kwargs.setdefault("_request_timeout", _REQUEST_TIMEOUT)
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as err:
            if err.status == 404:
                raise ObjectNotFoundError(f"{description}: not found") from err
            raise ApiServerException(
                f"{description}: {err.status} {err.reason}"
            ) from err
        except urllib3.exceptions.HTTPError as err:
            raise ApiServerException(f"{description}: {err}") from err

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        result: dict[str, Any] = self._api_client.sanitize_for_serialization(obj)
        return result

    async def get_namespace(self, name: str) -> dict[str, Any]:
        result = await self._call(
            f"Getting namespace {name}", self._core_v1.read_namespace, name
        )
        return self._to_dict(result)

    async def create_namespace(self, name: str) -> dict[str, Any]:
        result = await self._call(
            f"Creating namespace {name}",
            self._core_v1.create_namespace,
            {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}},
        )
        return self._to_dict(result)

    async def get(self, resource_id: NamedResource) -> dict[str, Any]:
        rt = resource_id.resource_type
        result: dict[str, Any] = await self._call(
            f"Getting {resource_id}",
            self._custom.get_namespaced_custom_object,
            rt.group,
            rt.version,
            resource_id.namespace,
            rt.plural,
            resource_id.name,
        )
        return result

    async def list_objects(
        self, resource_type: ResourceType, namespace: str
    ) -> list[dict[str, Any]]:
        result = await self._call(
            f"Listing {resource_type.kind} in {namespace}",
            self._custom.list_namespaced_custom_object,
            resource_type.group,
            resource_type.version,
            namespace,
            resource_type.plural,
        )
        items: list[dict[str, Any]] = result.get("items", [])
        return items

    async def create(self, doc: dict[str, Any]) -> dict[str, Any]:
        rt = RESOURCE_TYPES[doc["kind"]]
        metadata = doc["metadata"]
        result: dict[str, Any] = await self._call(
            f"Creating {rt.kind}/{metadata['namespace']}/{metadata['name']}",
            self._custom.create_namespaced_custom_object,
            rt.group,
            rt.version,
            metadata["namespace"],
            rt.plural,
            doc,
        )
        return result

    async def update(self, doc: dict[str, Any]) -> dict[str, Any]:
        rt = RESOURCE_TYPES[doc["kind"]]
        metadata = doc["metadata"]
        result: dict[str, Any] = await self._call(
            f"Updating {rt.kind}/{metadata['namespace']}/{metadata['name']}",
            self._custom.replace_namespaced_custom_object,
            rt.group,
            rt.version,
            metadata["namespace"],
            rt.plural,
            metadata["name"],
            doc,
        )
        return result

    async def patch(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> dict[str, Any]:
        rt = resource_id.resource_type
        # A dict body is sent as a JSON merge patch for custom objects
        result: dict[str, Any] = await self._call(
            f"Patching {resource_id}",
            self._custom.patch_namespaced_custom_object,
            rt.group,
            rt.version,
            resource_id.namespace,
            rt.plural,
            resource_id.name,
            patch,
        )
        return result

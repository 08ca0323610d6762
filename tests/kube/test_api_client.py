"""Tests for the kubernetes API server ResourceClient."""

from pathlib import Path
from unittest.mock import MagicMock, patch

from kubernetes import config as kube_config
from kubernetes.client import ApiException
import pytest
import urllib3

from update_controller.exceptions import (
    ApiServerException,
    ConfigException,
    ObjectNotFoundError,
)
from update_controller.kube.api_client import KubernetesResourceClient, load_api_client
from update_controller.manifest import (
    HELM_RELEASE_TYPE,
    GitRepository,
    NamedResource,
)

REPO_ID = NamedResource("GitRepository", "apps", "app")


@pytest.fixture(name="custom_api")
def mock_custom_api() -> MagicMock:
    return MagicMock()


@pytest.fixture(name="core_api")
def mock_core_api() -> MagicMock:
    return MagicMock()


@pytest.fixture(name="client")
def mock_client(custom_api: MagicMock, core_api: MagicMock) -> KubernetesResourceClient:
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda obj: obj
    with (
        patch("kubernetes.client.CustomObjectsApi", return_value=custom_api),
        patch("kubernetes.client.CoreV1Api", return_value=core_api),
    ):
        return KubernetesResourceClient(api_client)


async def test_get(client: KubernetesResourceClient, custom_api: MagicMock) -> None:
    """Test reading a custom object."""
    custom_api.get_namespaced_custom_object.return_value = {"kind": "GitRepository"}
    assert await client.get(REPO_ID) == {"kind": "GitRepository"}
    custom_api.get_namespaced_custom_object.assert_called_once_with(
        "source.toolkit.fluxcd.io",
        "v1",
        "apps",
        "gitrepositories",
        "app",
        _request_timeout=30,
    )


async def test_get_not_found(
    client: KubernetesResourceClient, custom_api: MagicMock
) -> None:
    """Test a 404 is raised as not found."""
    custom_api.get_namespaced_custom_object.side_effect = ApiException(
        status=404, reason="Not Found"
    )
    with pytest.raises(ObjectNotFoundError, match="GitRepository/apps/app"):
        await client.get(REPO_ID)


async def test_server_error(
    client: KubernetesResourceClient, custom_api: MagicMock
) -> None:
    """Test other API errors are raised as server errors."""
    custom_api.replace_namespaced_custom_object.side_effect = ApiException(
        status=409, reason="Conflict"
    )
    doc = GitRepository(name="app", namespace="apps", url="https://x").to_doc()
    with pytest.raises(ApiServerException, match="409 Conflict") as exc_info:
        await client.update(doc)
    assert not isinstance(exc_info.value, ObjectNotFoundError)


async def test_connection_error(
    client: KubernetesResourceClient, core_api: MagicMock
) -> None:
    """Test a connection failure is raised as a server error."""
    core_api.read_namespace.side_effect = urllib3.exceptions.ProtocolError(
        "connection reset"
    )
    with pytest.raises(ApiServerException, match="connection reset"):
        await client.get_namespace("kube-system")


async def test_create(client: KubernetesResourceClient, custom_api: MagicMock) -> None:
    """Test creating a custom object in its namespace."""
    doc = GitRepository(name="app", namespace="apps", url="https://x").to_doc()
    custom_api.create_namespaced_custom_object.return_value = doc
    assert await client.create(doc) == doc
    custom_api.create_namespaced_custom_object.assert_called_once_with(
        "source.toolkit.fluxcd.io",
        "v1",
        "apps",
        "gitrepositories",
        doc,
        _request_timeout=30,
    )


async def test_patch(client: KubernetesResourceClient, custom_api: MagicMock) -> None:
    """Test patching a HelmRelease."""
    release_id = NamedResource("HelmRelease", "apps", "app")
    body = {"spec": {"chart": {"spec": {"chart": "app"}}}}
    custom_api.patch_namespaced_custom_object.return_value = {}
    await client.patch(release_id, body)
    custom_api.patch_namespaced_custom_object.assert_called_once_with(
        "helm.toolkit.fluxcd.io",
        "v2",
        "apps",
        "helmreleases",
        "app",
        body,
        _request_timeout=30,
    )


async def test_list_objects(
    client: KubernetesResourceClient, custom_api: MagicMock
) -> None:
    """Test listing custom objects in a namespace."""
    custom_api.list_namespaced_custom_object.return_value = {
        "items": [{"metadata": {"name": "app"}}]
    }
    assert await client.list_objects(HELM_RELEASE_TYPE, "apps") == [
        {"metadata": {"name": "app"}}
    ]


async def test_namespace(client: KubernetesResourceClient, core_api: MagicMock) -> None:
    """Test reading and creating namespaces."""
    core_api.read_namespace.return_value = {"metadata": {"uid": "1234"}}
    assert await client.get_namespace("kube-system") == {"metadata": {"uid": "1234"}}
    core_api.create_namespace.return_value = {"metadata": {"name": "apps"}}
    assert await client.create_namespace("apps") == {"metadata": {"name": "apps"}}


def test_load_api_client_kubeconfig(tmp_path: Path) -> None:
    """Test loading an existing kubeconfig file."""
    kubeconfig = tmp_path / "config"
    kubeconfig.write_text("")
    with (
        patch("kubernetes.config.load_kube_config") as load_kube_config,
        patch("kubernetes.config.load_incluster_config") as load_incluster_config,
    ):
        load_api_client(kubeconfig)
    assert load_kube_config.call_args.kwargs["config_file"] == str(kubeconfig)
    load_incluster_config.assert_not_called()


def test_load_api_client_in_cluster(tmp_path: Path) -> None:
    """Test falling back to the in-cluster config."""
    with (
        patch("kubernetes.config.load_kube_config") as load_kube_config,
        patch("kubernetes.config.load_incluster_config") as load_incluster_config,
    ):
        load_api_client(tmp_path / "missing")
    load_kube_config.assert_not_called()
    load_incluster_config.assert_called_once()


def test_load_api_client_error() -> None:
    """Test a configuration error is raised as our own error."""
    with patch(
        "kubernetes.config.load_incluster_config",
        side_effect=kube_config.ConfigException("no service host"),
    ):
        with pytest.raises(ConfigException, match="no service host"):
            load_api_client(None)

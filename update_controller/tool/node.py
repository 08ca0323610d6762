"""Update-controller node action."""

import logging
import pathlib
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from dataclasses import replace
from typing import Any, cast

import docker
from docker.errors import DockerException

from update_controller.backend.base import ConvergenceBackend
from update_controller.backend.container import ContainerBackend
from update_controller.backend.host_config import HostConfigBackend
from update_controller.cluster_id import resolve_cluster_id
from update_controller.config import (
    DEFAULT_STOP_TIMEOUT,
    DEFAULT_VERSION,
    DEFAULT_VERSION_KEY,
    BackendKind,
    ContainerConfig,
    ControllerConfig,
    HostConfigConfig,
)
from update_controller.coordinator import OmahaClient
from update_controller.exceptions import ConfigException, ContainerException
from update_controller.version import strip_v

from . import controller_common

_LOGGER = logging.getLogger(__name__)


def _docker_client() -> docker.DockerClient:
    try:
        return docker.from_env()
    except DockerException as err:
        raise ContainerException(f"Unable to connect to docker: {err}") from err


class NodeAction:
    """Converge a single host."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "node",
                help="Update a host service or docker containers",
                description=(
                    "Rewrite the version in the environment file of a host "
                    "service, or recreate docker containers with --docker."
                ),
            ),
        )
        controller_common.add_common_flags(args)
        args.add_argument(
            "--docker",
            default=False,
            action=BooleanOptionalAction,
            help="Recreate docker containers named after the update package",
        )
        args.add_argument(
            "--env-path",
            type=pathlib.Path,
            default=None,
            help="Environment file holding the version of the host service",
        )
        args.add_argument(
            "--version-key",
            default=DEFAULT_VERSION_KEY,
            help="Key in the environment file holding the version",
        )
        args.add_argument(
            "--stop-timeout",
            type=int,
            default=DEFAULT_STOP_TIMEOUT,
            help="Seconds a container is given to stop before it is killed",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        server: str,
        app_id: str,
        channel: str,
        interval: float,
        dev: bool,
        kubeconfig,
        initial_version: str | None,
        docker: bool,  # pylint: disable=redefined-outer-name
        env_path: pathlib.Path | None,
        version_key: str,
        stop_timeout: int,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        if not docker and env_path is None:
            raise ConfigException("--env-path is required unless --docker is set")

        config = ControllerConfig(
            server=server,
            app_id=app_id,
            channel=channel,
            interval=interval,
            dev=dev,
            kubeconfig=kubeconfig,
            backend=BackendKind.CONTAINER if docker else BackendKind.HOST_CONFIG,
            initial_version=initial_version or DEFAULT_VERSION,
            container=ContainerConfig(stop_timeout=stop_timeout),
            host_config=HostConfigConfig(env_path=env_path, version_key=version_key),
        )

        backend: ConvergenceBackend[Any, Any]
        if config.backend == BackendKind.CONTAINER:
            backend = ContainerBackend(
                _docker_client(), stop_timeout=config.container.stop_timeout
            )
        else:
            assert config.host_config.env_path is not None
            host_config = HostConfigBackend(
                config.host_config.env_path,
                version_key=config.host_config.version_key,
            )
            if initial_version is None:
                config = replace(
                    config, initial_version=await host_config.current_version()
                )
            backend = host_config

        client = None
        if not config.dev:
            client = controller_common.resource_client(config.kubeconfig)
        cluster_id = await resolve_cluster_id(config.dev, client)
        coordinator = OmahaClient(
            config.server,
            config.app_id,
            config.channel,
            cluster_id,
            strip_v(config.initial_version),
        )
        await controller_common.run_controller(
            config, coordinator, backend, cluster_id
        )

"""Update-controller kubernetes action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from update_controller.backend.gitops import GitOpsBackend
from update_controller.cluster_id import resolve_cluster_id
from update_controller.config import (
    DEFAULT_VERSION,
    BackendKind,
    ControllerConfig,
    GitOpsConfig,
)
from update_controller.coordinator import OmahaClient
from update_controller.descriptor import DescriptorFormat
from update_controller.version import strip_v

from . import controller_common

_LOGGER = logging.getLogger(__name__)


class KubernetesAction:
    """Converge a Flux managed kubernetes cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "kubernetes",
                aliases=["k8s"],
                help="Update a kubernetes cluster through Flux",
                description=(
                    "Apply Flux sources and Kustomizations published by the "
                    "update coordinator and wait for them to become ready."
                ),
            ),
        )
        controller_common.add_common_flags(args)
        args.add_argument(
            "--descriptor-format",
            choices=[str(f) for f in DescriptorFormat],
            default=str(DescriptorFormat.QUERY),
            help="Encoding of the update descriptor",
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
        descriptor_format: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = ControllerConfig(
            server=server,
            app_id=app_id,
            channel=channel,
            interval=interval,
            dev=dev,
            kubeconfig=kubeconfig,
            backend=BackendKind.GITOPS,
            initial_version=initial_version or DEFAULT_VERSION,
            gitops=GitOpsConfig(descriptor_format=DescriptorFormat(descriptor_format)),
        )
        client = controller_common.resource_client(config.kubeconfig)
        cluster_id = await resolve_cluster_id(config.dev, client)
        coordinator = OmahaClient(
            config.server,
            config.app_id,
            config.channel,
            cluster_id,
            strip_v(config.initial_version),
        )
        backend = GitOpsBackend(
            client, coordinator, config.gitops.descriptor_format
        )
        await controller_common.run_controller(
            config, coordinator, backend, cluster_id
        )

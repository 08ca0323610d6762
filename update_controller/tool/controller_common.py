"""Common utilities for the controller commands."""

import asyncio
import logging
import pathlib
import signal
from argparse import ArgumentParser, BooleanOptionalAction
from typing import Any

from update_controller.backend.base import ConvergenceBackend
from update_controller.config import DEFAULT_CHANNEL, DEFAULT_POLL_INTERVAL
from update_controller.config import ControllerConfig
from update_controller.coordinator import OmahaClient
from update_controller.kube.api_client import (
    KubernetesResourceClient,
    load_api_client,
)
from update_controller.kube.readiness import ReadinessWaiter
from update_controller.reconciler import ReconcilerState, ReconciliationLoop
from update_controller.version import strip_v

_LOGGER = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = pathlib.Path("~/.kube/config")


def add_common_flags(args: ArgumentParser) -> None:
    """Add flags shared by all controller commands to the arguments object."""
    args.add_argument(
        "--server",
        required=True,
        help="URL of the update coordinator",
    )
    args.add_argument(
        "--app-id",
        required=True,
        help="Application ID assigned by the update coordinator",
    )
    args.add_argument(
        "--channel",
        default=DEFAULT_CHANNEL,
        help="Channel to follow for updates",
    )
    args.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds between checks for updates",
    )
    args.add_argument(
        "--dev",
        default=False,
        action=BooleanOptionalAction,
        help="Use a random instance id instead of the cluster id",
    )
    args.add_argument(
        "--kubeconfig",
        type=pathlib.Path,
        default=DEFAULT_KUBECONFIG,
        help="Path to the kubeconfig, the in-cluster config is used if missing",
    )
    args.add_argument(
        "--initial-version",
        default=None,
        help="Version assumed to be installed at startup",
    )


def resource_client(kubeconfig: pathlib.Path | None) -> KubernetesResourceClient:
    """Create a client for the kubernetes API server."""
    return KubernetesResourceClient(load_api_client(kubeconfig))


async def run_controller(
    config: ControllerConfig,
    coordinator: OmahaClient,
    backend: ConvergenceBackend[Any, Any],
    cluster_id: str,
) -> None:
    """Run the reconciliation loop until the process is signalled to stop."""
    controller = ReconciliationLoop(
        coordinator,
        backend,
        ReconcilerState(
            cluster_id=cluster_id,
            current_version=strip_v(config.initial_version),
        ),
        interval=config.interval,
        waiter=ReadinessWaiter(config.readiness_interval, config.readiness_timeout),
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, controller.stop)
    _LOGGER.info(
        "Running %s controller for %s on channel %s",
        backend.name,
        config.app_id,
        config.channel,
    )
    try:
        await controller.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await coordinator.close()

"""Backend that converges a host by recreating docker containers.

Containers whose name matches the package of the update are replaced by a
container of the same name running the image tag of the new version.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any, TypeVar

import docker
from docker.errors import DockerException
from docker.models.containers import Container

from update_controller.config import DEFAULT_STOP_TIMEOUT
from update_controller.coordinator import UpdateInfo
from update_controller.exceptions import ContainerException, InputException
from update_controller.kube.readiness import ReadinessSummary

from .base import ConvergenceBackend

__all__ = ["ContainerBackend", "ImageUpdate", "container_name"]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

RUNNING = "running"


@dataclass(frozen=True)
class ImageUpdate:
    """The containers to replace and the image tag they should run."""

    name: str
    """Name of the containers and of the image."""

    tag: str
    """The image tag of the new version."""

    @property
    def image(self) -> str:
        return f"{self.name}:{self.tag}"


def container_name(container: Container) -> str:
    """Return the name of the container without the leading slash.

    The daemon reports names as `/<name>`. Only the first name is used.
    """
    names = container.attrs.get("Names") or [container.attrs.get("Name") or ""]
    parts = names[0].split("/")
    return parts[1] if len(parts) > 1 else parts[0]


class ContainerBackend(ConvergenceBackend[ImageUpdate, Container]):
    """Recreate matching containers with the image of the new version."""

    name = "container"

    def __init__(
        self, client: docker.DockerClient, stop_timeout: int = DEFAULT_STOP_TIMEOUT
    ) -> None:
        """Initialize ContainerBackend."""
        self._client = client
        self._stop_timeout = stop_timeout

    async def _call(
        self, description: str, func: Callable[..., _T], *args: Any, **kwargs: Any
    ) -> _T:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except DockerException as err:
            raise ContainerException(f"{description}: {err}") from err

    async def _recreate(self, container: Container, image: str) -> Container:
        name = container_name(container)
        _LOGGER.info("Stopping container %s", name)
        await self._call(
            f"Stopping container {name}", container.stop, timeout=self._stop_timeout
        )
        await self._call(f"Removing container {name}", container.remove)
        _LOGGER.info("Creating container %s from %s", name, image)
        new_container = await self._call(
            f"Creating container {name}",
            self._client.containers.create,
            image,
            name=name,
        )
        await self._call(f"Starting container {name}", new_container.start)
        return new_container

    async def decode(self, info: UpdateInfo) -> ImageUpdate:
        if info.package is None or not info.package.name:
            raise InputException("Update has no package name to match containers")
        if not info.version:
            raise InputException("Update has no version to use as the image tag")
        return ImageUpdate(name=info.package.name, tag=info.version)

    async def apply(self, plan: ImageUpdate) -> list[Container]:
        containers = await self._call(
            "Listing containers", self._client.containers.list
        )
        matches = [c for c in containers if container_name(c) == plan.name]
        if not matches:
            _LOGGER.warning("No running container named %s", plan.name)
            return []
        # Containers are replaced one at a time, a failure leaves the rest as is
        return [await self._recreate(container, plan.image) for container in matches]

    async def check_ready(self, touched: list[Container]) -> ReadinessSummary:
        summary = ReadinessSummary()
        for container in touched:
            name = container_name(container)
            await self._call(f"Reloading container {name}", container.reload)
            if container.status == RUNNING:
                summary.ready.append(name)
            else:
                summary.lagging[name] = f"status {container.status}"
        return summary

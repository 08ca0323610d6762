"""Backend that converges a host by rewriting the version in an env file.

The service manager of the host reads the environment file when it starts the
service, so changing the version is all that is needed on this side.
"""

import logging
from pathlib import Path

from update_controller.config import DEFAULT_VERSION_KEY
from update_controller.coordinator import UpdateInfo
from update_controller.exceptions import HostConfigException, InputException
from update_controller.kube.readiness import ReadinessSummary

from .base import ConvergenceBackend
from .envfile import EnvFile, read_env_file, write_env_file

__all__ = ["HostConfigBackend"]

_LOGGER = logging.getLogger(__name__)


class HostConfigBackend(ConvergenceBackend[str, Path]):
    """Set the version key of an environment file on the host."""

    name = "host-config"

    def __init__(self, env_path: Path, version_key: str = DEFAULT_VERSION_KEY) -> None:
        """Initialize HostConfigBackend."""
        self._env_path = env_path
        self._version_key = version_key

    async def _read(self) -> tuple[EnvFile, str]:
        env = await read_env_file(self._env_path)
        if (current := env.get(self._version_key)) is None:
            raise HostConfigException(
                f"{self._env_path} has no {self._version_key} entry"
            )
        return env, current

    async def current_version(self) -> str:
        """Return the version currently set in the environment file."""
        _, current = await self._read()
        return current

    async def _set_version(self, version: str) -> bool:
        env, current = await self._read()
        if current == version:
            _LOGGER.debug("%s already at version %s", self._env_path, version)
            return False
        env.set(self._version_key, version)
        await write_env_file(self._env_path, env)
        _LOGGER.info(
            "Updated %s from version %s to %s", self._env_path, current, version
        )
        return True

    async def decode(self, info: UpdateInfo) -> str:
        if not info.version or any(c.isspace() for c in info.version):
            raise InputException(
                f"Invalid version for {self._env_path}: {info.version!r}"
            )
        return info.version

    async def apply(self, plan: str) -> list[Path]:
        await self._set_version(plan)
        return [self._env_path]

    async def check_ready(self, touched: list[Path]) -> ReadinessSummary:
        return ReadinessSummary(ready=[str(path) for path in touched])

    async def reassert(self, version: str | None) -> None:
        if version is None:
            return
        if await self._set_version(version):
            _LOGGER.warning(
                "Restored drifted version %s in %s", version, self._env_path
            )

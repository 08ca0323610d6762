"""Library for reading and rewriting `KEY=value` environment files.

Only the values of existing keys are replaced. Comments, blank lines and the
order of the entries are preserved when the file is written back.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from update_controller.exceptions import HostConfigException

__all__ = ["EnvFile", "read_env_file", "write_env_file"]

_LOGGER = logging.getLogger(__name__)


def _parse_key(line: str) -> str | None:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    return stripped.split("=", 1)[0].strip()


@dataclass
class EnvFile:
    """The parsed contents of an environment file.

    Lines keep their original line endings so that untouched lines are written
    back unchanged.
    """

    lines: list[str] = field(default_factory=list)

    @classmethod
    def parse(cls, content: str) -> "EnvFile":
        """Parse the contents of an environment file."""
        return cls(lines=content.splitlines(keepends=True))

    def _index(self, key: str) -> int | None:
        for index, line in enumerate(self.lines):
            if _parse_key(line) == key:
                return index
        return None

    def get(self, key: str) -> str | None:
        """Return the value of the key, or None if it is not set."""
        if (index := self._index(key)) is None:
            return None
        return self.lines[index].split("=", 1)[1].strip()

    def set(self, key: str, value: str) -> None:
        """Replace the value of an existing key."""
        if (index := self._index(key)) is None:
            raise KeyError(key)
        line = self.lines[index]
        ending = line[len(line.rstrip("\r\n")) :]
        self.lines[index] = f"{key}={value}{ending}"

    def render(self) -> str:
        """Return the contents of the file."""
        return "".join(self.lines)


async def read_env_file(path: Path) -> EnvFile:
    """Read and parse an environment file."""
    try:
        async with aiofiles.open(str(path), newline="") as env_file:
            content = await env_file.read()
    except OSError as err:
        raise HostConfigException(f"Unable to read {path}: {err}") from err
    return EnvFile.parse(content)


async def write_env_file(path: Path, env: EnvFile) -> None:
    """Replace the environment file with the new contents.

    The contents are written to a temporary file in the same directory which
    is then renamed over the original so readers never see a partial file.
    """
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        async with aiofiles.open(str(tmp_path), mode="w", newline="") as tmp_file:
            await tmp_file.write(env.render())
        await aiofiles.os.replace(str(tmp_path), str(path))
    except OSError as err:
        if await aiofiles.os.path.exists(str(tmp_path)):
            await aiofiles.os.remove(str(tmp_path))
        raise HostConfigException(f"Unable to write {path}: {err}") from err
    _LOGGER.debug("Wrote %s", path)

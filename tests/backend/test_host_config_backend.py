"""Tests for the HostConfig backend."""

from pathlib import Path

import pytest

from update_controller.backend import HostConfigBackend
from update_controller.coordinator import UpdateInfo
from update_controller.exceptions import HostConfigException, InputException

ENV_CONTENT = """\
# Managed by the update controller
NAME=app
VERSION=1.0.0

LOG_LEVEL=info
"""


@pytest.fixture(name="env_path")
def mock_env_path(tmp_path: Path) -> Path:
    env_path = tmp_path / "app.env"
    env_path.write_text(ENV_CONTENT)
    return env_path


async def test_current_version(env_path: Path) -> None:
    """Test reading the installed version."""
    backend = HostConfigBackend(env_path)
    assert await backend.current_version() == "1.0.0"


@pytest.mark.parametrize("version", ["2.0.0", "10.20.30-rc.1", "2"])
async def test_apply(env_path: Path, version: str) -> None:
    """Test the version is replaced regardless of its length."""
    backend = HostConfigBackend(env_path)
    plan = await backend.decode(UpdateInfo(has_update=True, version=version))
    touched = await backend.apply(plan)
    assert touched == [env_path]
    assert env_path.read_text() == ENV_CONTENT.replace(
        "VERSION=1.0.0", f"VERSION={version}"
    )
    assert not list(env_path.parent.glob(".*.tmp"))


async def test_apply_same_version(env_path: Path) -> None:
    """Test the file is left alone when already at the version."""
    mtime = env_path.stat().st_mtime_ns
    backend = HostConfigBackend(env_path)
    await backend.apply("1.0.0")
    assert env_path.read_text() == ENV_CONTENT
    assert env_path.stat().st_mtime_ns == mtime


async def test_missing_file(tmp_path: Path) -> None:
    """Test a missing environment file is an error."""
    backend = HostConfigBackend(tmp_path / "missing.env")
    with pytest.raises(HostConfigException, match="Unable to read"):
        await backend.apply("2.0.0")


async def test_missing_version_key(tmp_path: Path) -> None:
    """Test an environment file without a version is an error."""
    env_path = tmp_path / "app.env"
    env_path.write_text("NAME=app\n")
    backend = HostConfigBackend(env_path)
    with pytest.raises(HostConfigException, match="no VERSION entry"):
        await backend.apply("2.0.0")
    assert env_path.read_text() == "NAME=app\n"


@pytest.mark.parametrize("version", ["", "1.0 0"])
async def test_decode_invalid_version(env_path: Path, version: str) -> None:
    """Test versions that cannot be written to the file."""
    backend = HostConfigBackend(env_path)
    with pytest.raises(InputException):
        await backend.decode(UpdateInfo(has_update=True, version=version))


async def test_check_ready(env_path: Path) -> None:
    """Test the environment file is ready once written."""
    backend = HostConfigBackend(env_path)
    summary = await backend.check_ready([env_path])
    assert summary.all_ready


async def test_reassert(env_path: Path) -> None:
    """Test a drifted version is restored to the committed version."""
    backend = HostConfigBackend(env_path)
    await backend.reassert(None)
    assert env_path.read_text() == ENV_CONTENT

    await backend.reassert("1.0.0")
    assert env_path.read_text() == ENV_CONTENT

    env_path.write_text(ENV_CONTENT.replace("VERSION=1.0.0", "VERSION=0.9.0"))
    await backend.reassert("1.0.0")
    assert env_path.read_text() == ENV_CONTENT

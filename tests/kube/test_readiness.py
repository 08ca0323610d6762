"""Tests for waiting on resources to become ready."""

from unittest.mock import AsyncMock

import pytest

from update_controller.exceptions import (
    ApiServerException,
    ReadinessTimeoutError,
)
from update_controller.kube import (
    InMemoryResourceClient,
    ReadinessSummary,
    ReadinessWaiter,
    check_resources,
    create_or_update,
)
from update_controller.manifest import GitRepository, Kustomization, NamedResource

REPO_ID = NamedResource("GitRepository", "apps", "app")
KS_ID = NamedResource("Kustomization", "apps", "app")


@pytest.fixture(name="client")
async def mock_client() -> InMemoryResourceClient:
    client = InMemoryResourceClient()
    client.add_namespace("apps")
    await create_or_update(
        client, GitRepository(name="app", namespace="apps", url="https://x")
    )
    await create_or_update(
        client, Kustomization(name="app", namespace="apps", contents={"path": "."})
    )
    return client


async def test_check_resources(client: InMemoryResourceClient) -> None:
    """Test a summary of ready and lagging resources."""
    summary = await check_resources(client, [REPO_ID, KS_ID])
    assert summary.ready == []
    assert set(summary.lagging) == {str(REPO_ID), str(KS_ID)}
    assert not summary.all_ready

    client.set_status(REPO_ID, ready=True)
    summary = await check_resources(client, [REPO_ID, KS_ID])
    assert summary.ready == [str(REPO_ID)]
    assert list(summary.lagging) == [str(KS_ID)]
    assert "Ready 1/2" in summary.summary_message

    client.set_status(KS_ID, ready=True)
    summary = await check_resources(client, [REPO_ID, KS_ID])
    assert summary.all_ready
    assert summary.summary_message == "All 2 resources ready."


async def test_check_resources_missing(client: InMemoryResourceClient) -> None:
    """Test a resource that disappeared aborts the check."""
    missing = NamedResource("HelmRelease", "apps", "app")
    with pytest.raises(ApiServerException, match="Checking readiness of"):
        await check_resources(client, [missing])


async def test_wait_ready_immediately() -> None:
    """Test the first check happens without waiting."""
    check = AsyncMock(return_value=ReadinessSummary(ready=["a"]))
    waiter = ReadinessWaiter(interval=60, timeout=600)
    summary = await waiter.wait(check)
    assert summary.all_ready
    assert check.await_count == 1


async def test_wait_until_ready() -> None:
    """Test polling continues until every resource is ready at once."""
    check = AsyncMock(
        side_effect=[
            ReadinessSummary(ready=["a"], lagging={"b": "progressing"}),
            ReadinessSummary(ready=["b"], lagging={"a": "progressing"}),
            ReadinessSummary(ready=["a", "b"]),
        ]
    )
    waiter = ReadinessWaiter(interval=0.01, timeout=5)
    summary = await waiter.wait(check)
    assert summary.ready == ["a", "b"]
    assert check.await_count == 3


async def test_wait_timeout() -> None:
    """Test a timeout reports the resources that are still lagging."""
    check = AsyncMock(
        return_value=ReadinessSummary(ready=["a"], lagging={"b": "progressing"})
    )
    waiter = ReadinessWaiter(interval=0.01, timeout=0.05)
    with pytest.raises(ReadinessTimeoutError) as exc_info:
        await waiter.wait(check)
    assert exc_info.value.lagging == ["b"]
    assert exc_info.value.timeout == 0.05
    assert "b" in str(exc_info.value)
    assert check.await_count >= 2


async def test_wait_error() -> None:
    """Test an error while checking aborts the wait."""
    check = AsyncMock(side_effect=ApiServerException("connection refused"))
    waiter = ReadinessWaiter(interval=0.01, timeout=5)
    with pytest.raises(ApiServerException, match="connection refused"):
        await waiter.wait(check)
    assert check.await_count == 1

"""Tests for the Omaha coordinator client."""

from collections.abc import AsyncGenerator
from xml.etree import ElementTree

import httpx
import pytest

from update_controller.coordinator import (
    PROGRESS_EVENTS,
    OmahaClient,
    PackageInfo,
    Progress,
    UpdateInfo,
)
from update_controller.exceptions import CoordinatorException

SERVER = "https://nebraska.example.com/v1/update/"
APP_ID = "e96281a6-d1af-4bde-9a0a-97b76e56dc57"
INSTANCE_ID = "7a1b2c3d-0000-4000-8000-000000000001"

NO_UPDATE_RESPONSE = f"""<?xml version="1.0" encoding="UTF-8"?>
<response protocol="3.0" server="nebraska">
  <daystart elapsed_seconds="0"></daystart>
  <app appid="{APP_ID}" status="ok">
    <updatecheck status="noupdate"></updatecheck>
  </app>
</response>
"""

UPDATE_RESPONSE = f"""<?xml version="1.0" encoding="UTF-8"?>
<response protocol="3.0" server="nebraska">
  <app appid="{APP_ID}" status="ok">
    <updatecheck status="ok">
      <urls>
        <url codebase="https://github.com/example/app?nua_commit=abc"></url>
      </urls>
      <manifest version="2.0.0">
        <packages>
          <package name="app" hash="aGFzaA==" size="1024" required="true"></package>
        </packages>
      </manifest>
    </updatecheck>
  </app>
</response>
"""

EVENT_RESPONSE = f"""<?xml version="1.0" encoding="UTF-8"?>
<response protocol="3.0" server="nebraska">
  <app appid="{APP_ID}" status="ok">
    <event status="ok"></event>
  </app>
</response>
"""


class FakeServer:
    """Records requests and replies with a fixed response."""

    def __init__(self, body: str = NO_UPDATE_RESPONSE, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)

    def last_app(self) -> ElementTree.Element:
        request = ElementTree.fromstring(self.requests[-1].content)
        app = request.find("app")
        assert app is not None
        return app


@pytest.fixture(name="server")
def mock_server() -> FakeServer:
    return FakeServer()


@pytest.fixture(name="client")
async def mock_client(server: FakeServer) -> AsyncGenerator[OmahaClient, None]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    client = OmahaClient(
        SERVER, APP_ID, "stable", INSTANCE_ID, "1.0.0", http_client=http_client
    )
    yield client
    await client.close()


async def test_check_for_update_no_update(
    client: OmahaClient, server: FakeServer
) -> None:
    """Test a response without an update."""
    info = await client.check_for_update()
    assert info == UpdateInfo(has_update=False)

    request = server.requests[0]
    assert request.method == "POST"
    assert str(request.url) == SERVER
    app = server.last_app()
    assert app.get("appid") == APP_ID
    assert app.get("version") == "1.0.0"
    assert app.get("track") == "stable"
    assert app.get("machineid") == INSTANCE_ID
    assert app.find("updatecheck") is not None


async def test_check_for_update(client: OmahaClient, server: FakeServer) -> None:
    """Test a response offering a new version."""
    server.body = UPDATE_RESPONSE
    info = await client.check_for_update()
    assert info.has_update
    assert info.version == "2.0.0"
    assert info.url == "https://github.com/example/app?nua_commit=abc"
    assert info.package == PackageInfo(name="app", hash="aGFzaA==", size=1024)


async def test_instance_version(client: OmahaClient, server: FakeServer) -> None:
    """Test the reported version follows the committed version."""
    assert client.get_instance_version() == "1.0.0"
    client.set_instance_version("2.0.0")
    assert client.get_instance_version() == "2.0.0"
    await client.check_for_update()
    assert server.last_app().get("version") == "2.0.0"


@pytest.mark.parametrize("progress", list(Progress))
async def test_report_progress(
    client: OmahaClient, server: FakeServer, progress: Progress
) -> None:
    """Test each progress state is sent as an Omaha event."""
    server.body = EVENT_RESPONSE
    await client.report_progress(progress)
    event = server.last_app().find("event")
    assert event is not None
    event_type, event_result = PROGRESS_EVENTS[progress]
    assert event.get("eventtype") == str(event_type)
    assert event.get("eventresult") == str(event_result)


def test_progress_events() -> None:
    """Test the Omaha event codes of each progress state."""
    assert PROGRESS_EVENTS == {
        Progress.DOWNLOAD_STARTED: (13, 1),
        Progress.DOWNLOAD_FINISHED: (14, 1),
        Progress.INSTALLATION_STARTED: (800, 1),
        Progress.INSTALLATION_FINISHED: (3, 1),
        Progress.UPDATE_COMPLETE: (3, 2),
        Progress.ERROR: (3, 0),
    }


async def test_http_error(client: OmahaClient, server: FakeServer) -> None:
    """Test a server error is raised as a coordinator error."""
    server.status_code = 500
    with pytest.raises(CoordinatorException, match="failed"):
        await client.check_for_update()


async def test_invalid_xml(client: OmahaClient, server: FakeServer) -> None:
    """Test a response that is not XML."""
    server.body = "<html>oops"
    with pytest.raises(CoordinatorException, match="invalid response"):
        await client.check_for_update()


async def test_unknown_application(client: OmahaClient, server: FakeServer) -> None:
    """Test the coordinator rejecting the application."""
    server.body = NO_UPDATE_RESPONSE.replace(
        'status="ok"', 'status="error-unknownApplication"'
    )
    with pytest.raises(CoordinatorException, match="rejected application"):
        await client.check_for_update()


async def test_update_check_error_status(
    client: OmahaClient, server: FakeServer
) -> None:
    """Test an update check status other than ok or noupdate."""
    server.body = NO_UPDATE_RESPONSE.replace(
        'status="noupdate"', 'status="error-internal"'
    )
    with pytest.raises(CoordinatorException, match="error-internal"):
        await client.check_for_update()


async def test_transport_error() -> None:
    """Test a connection failure is raised as a coordinator error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = OmahaClient(
        SERVER, APP_ID, "stable", INSTANCE_ID, "1.0.0", http_client=http_client
    )
    with pytest.raises(CoordinatorException, match="connection refused"):
        await client.check_for_update()
    await client.close()


async def test_fetch_descriptor_inline(client: OmahaClient, server: FakeServer) -> None:
    """Test inline package content is used without a request."""
    info = UpdateInfo(
        has_update=True,
        version="2.0.0",
        url="https://example.com/",
        package=PackageInfo(name="config.yaml", content="packages: []"),
    )
    assert await client.fetch_descriptor(info) == "packages: []"
    assert not server.requests


async def test_fetch_descriptor_url(client: OmahaClient, server: FakeServer) -> None:
    """Test the package is fetched relative to the codebase directory."""
    server.body = "packages: []\n"
    info = UpdateInfo(
        has_update=True,
        version="2.0.0",
        url="https://example.com/releases/",
        package=PackageInfo(name="config.yaml"),
    )
    assert await client.fetch_descriptor(info) == "packages: []\n"
    assert str(server.requests[0].url) == "https://example.com/releases/config.yaml"


async def test_fetch_descriptor_error(client: OmahaClient, server: FakeServer) -> None:
    """Test a failure fetching the package."""
    server.status_code = 404
    info = UpdateInfo(has_update=True, version="2.0.0", url="https://example.com/x")
    with pytest.raises(CoordinatorException, match="Fetching update descriptor"):
        await client.fetch_descriptor(info)


async def test_fetch_descriptor_no_url(client: OmahaClient) -> None:
    """Test an update without a descriptor location."""
    with pytest.raises(CoordinatorException, match="no descriptor URL"):
        await client.fetch_descriptor(UpdateInfo(has_update=True, version="2.0.0"))

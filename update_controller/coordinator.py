"""Client for the update coordinator.

The coordinator (Nebraska) speaks the Omaha protocol: the controller posts an
XML request describing the application instance and receives an XML response
describing the available update, if any. Installation progress is reported
back as Omaha events.

The reconciliation loop only depends on the `Coordinator` interface so that it
can be exercised without a real server.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
import logging
import uuid
from xml.etree import ElementTree

import httpx

from .exceptions import CoordinatorException

__all__ = [
    "Progress",
    "PackageInfo",
    "UpdateInfo",
    "Coordinator",
    "OmahaClient",
]

_LOGGER = logging.getLogger(__name__)

OMAHA_PROTOCOL = "3.0"
UPDATER_NAME = "update-controller"
DEFAULT_TIMEOUT = 30.0

EVENT_TYPE_UPDATE_COMPLETE = 3
EVENT_TYPE_DOWNLOAD_STARTED = 13
EVENT_TYPE_DOWNLOAD_FINISHED = 14
EVENT_TYPE_INSTALL_STARTED = 800

EVENT_RESULT_ERROR = 0
EVENT_RESULT_SUCCESS = 1
EVENT_RESULT_SUCCESS_REBOOT = 2


class Progress(StrEnum):
    """Installation progress reported to the coordinator."""

    DOWNLOAD_STARTED = "DownloadStarted"
    DOWNLOAD_FINISHED = "DownloadFinished"
    INSTALLATION_STARTED = "InstallationStarted"
    INSTALLATION_FINISHED = "InstallationFinished"
    UPDATE_COMPLETE = "UpdateComplete"
    ERROR = "Error"


# Omaha (eventtype, eventresult) for each progress state
PROGRESS_EVENTS: dict[Progress, tuple[int, int]] = {
    Progress.DOWNLOAD_STARTED: (EVENT_TYPE_DOWNLOAD_STARTED, EVENT_RESULT_SUCCESS),
    Progress.DOWNLOAD_FINISHED: (EVENT_TYPE_DOWNLOAD_FINISHED, EVENT_RESULT_SUCCESS),
    Progress.INSTALLATION_STARTED: (EVENT_TYPE_INSTALL_STARTED, EVENT_RESULT_SUCCESS),
    Progress.INSTALLATION_FINISHED: (
        EVENT_TYPE_UPDATE_COMPLETE,
        EVENT_RESULT_SUCCESS,
    ),
    Progress.UPDATE_COMPLETE: (
        EVENT_TYPE_UPDATE_COMPLETE,
        EVENT_RESULT_SUCCESS_REBOOT,
    ),
    Progress.ERROR: (EVENT_TYPE_UPDATE_COMPLETE, EVENT_RESULT_ERROR),
}


@dataclass(frozen=True)
class PackageInfo:
    """Metadata about the package attached to an update."""

    name: str
    """The name of the package."""

    content: str | None = None
    """The package contents when supplied inline by the coordinator."""

    hash: str | None = None
    """The package hash as advertised by the coordinator."""

    size: int | None = None
    """The package size in bytes as advertised by the coordinator."""


@dataclass(frozen=True)
class UpdateInfo:
    """Result of a single check for updates."""

    has_update: bool
    """True when the coordinator offers a new version."""

    version: str = ""
    """The version offered by the coordinator."""

    url: str = ""
    """The opaque update descriptor URL."""

    package: PackageInfo | None = None
    """The package of the update, if any."""

    @property
    def download_url(self) -> str:
        """Location of the package contents.

        Omaha codebases are directories when they end with a slash, in which
        case the package name is appended.
        """
        if self.package and self.url.endswith("/"):
            return f"{self.url}{self.package.name}"
        return self.url


class Coordinator(ABC):
    """Capability for talking to the update coordinator."""

    @abstractmethod
    async def check_for_update(self) -> UpdateInfo:
        """Ask the coordinator whether a new version is available."""

    @abstractmethod
    async def report_progress(self, progress: Progress) -> None:
        """Report installation progress of the current update."""

    @abstractmethod
    def get_instance_version(self) -> str:
        """Return the version this instance reports to the coordinator."""

    @abstractmethod
    def set_instance_version(self, version: str) -> None:
        """Set the version this instance reports to the coordinator."""

    @abstractmethod
    async def fetch_descriptor(self, info: UpdateInfo) -> str:
        """Return the contents of the update package."""


class OmahaClient(Coordinator):
    """Coordinator client speaking the Omaha protocol over HTTP."""

    def __init__(
        self,
        server: str,
        app_id: str,
        channel: str,
        instance_id: str,
        instance_version: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OmahaClient.

        Args:
            server: The full URL of the Omaha endpoint.
            app_id: The application ID assigned by the coordinator.
            channel: The channel (track) the instance follows.
            instance_id: Stable identifier of this deployment target.
            instance_version: The version currently installed.
            http_client: Optional client, mainly used to inject a transport.
        """
        self._server = server
        self._app_id = app_id
        self._channel = channel
        self._instance_id = instance_id
        self._instance_version = instance_version
        self._session_id = str(uuid.uuid4())
        self._client = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def close(self) -> None:
        """Release the underlying HTTP connections."""
        await self._client.aclose()

    def get_instance_version(self) -> str:
        return self._instance_version

    def set_instance_version(self, version: str) -> None:
        _LOGGER.debug("Setting instance version to %s", version)
        self._instance_version = version

    def _request(self) -> tuple[ElementTree.Element, ElementTree.Element]:
        request = ElementTree.Element(
            "request",
            {
                "protocol": OMAHA_PROTOCOL,
                "updater": UPDATER_NAME,
                "installsource": "scheduler",
                "ismachine": "1",
                "sessionid": self._session_id,
            },
        )
        ElementTree.SubElement(request, "os", {"platform": "linux"})
        app = ElementTree.SubElement(
            request,
            "app",
            {
                "appid": self._app_id,
                "version": self._instance_version,
                "track": self._channel,
                "machineid": self._instance_id,
                "bootid": self._session_id,
            },
        )
        return request, app

    async def _post(self, request: ElementTree.Element) -> ElementTree.Element:
        body = ElementTree.tostring(request, encoding="utf-8", xml_declaration=True)
        try:
            resp = await self._client.post(
                self._server,
                content=body,
                headers={"Content-Type": "text/xml"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as err:
            raise CoordinatorException(
                f"Request to coordinator {self._server} failed: {err}"
            ) from err
        try:
            return ElementTree.fromstring(resp.content)
        except ElementTree.ParseError as err:
            raise CoordinatorException(
                f"Coordinator returned an invalid response: {err}"
            ) from err

    def _find_app(self, response: ElementTree.Element) -> ElementTree.Element:
        for app in response.iter("app"):
            if app.get("appid") in (None, self._app_id):
                if (status := app.get("status", "ok")) != "ok":
                    raise CoordinatorException(
                        f"Coordinator rejected application {self._app_id}: {status}"
                    )
                return app
        raise CoordinatorException(
            f"Coordinator response has no entry for application {self._app_id}"
        )

    async def check_for_update(self) -> UpdateInfo:
        request, app = self._request()
        ElementTree.SubElement(app, "updatecheck")
        response = await self._post(request)
        app_response = self._find_app(response)
        if (update_check := app_response.find("updatecheck")) is None:
            raise CoordinatorException("Coordinator response has no updatecheck")
        status = update_check.get("status")
        _LOGGER.debug("Update check status: %s", status)
        if status == "noupdate":
            return UpdateInfo(has_update=False)
        if status != "ok":
            raise CoordinatorException(f"Update check failed with status: {status}")

        url = ""
        if (url_elem := update_check.find("urls/url")) is not None:
            url = url_elem.get("codebase", "")
        if (manifest := update_check.find("manifest")) is None:
            raise CoordinatorException("Update check response has no manifest")
        package: PackageInfo | None = None
        if (package_elem := manifest.find("packages/package")) is not None:
            size = package_elem.get("size")
            package = PackageInfo(
                name=package_elem.get("name", ""),
                content=package_elem.text.strip() if package_elem.text else None,
                hash=package_elem.get("hash"),
                size=int(size) if size and size.isdigit() else None,
            )
        return UpdateInfo(
            has_update=True,
            version=manifest.get("version", ""),
            url=url,
            package=package,
        )

    async def report_progress(self, progress: Progress) -> None:
        event_type, event_result = PROGRESS_EVENTS[progress]
        request, app = self._request()
        ElementTree.SubElement(
            app,
            "event",
            {"eventtype": str(event_type), "eventresult": str(event_result)},
        )
        _LOGGER.debug("Reporting progress %s", progress)
        await self._post(request)

    async def fetch_descriptor(self, info: UpdateInfo) -> str:
        if info.package and info.package.content:
            return info.package.content
        if not (url := info.download_url):
            raise CoordinatorException("Update has no descriptor URL to fetch")
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as err:
            raise CoordinatorException(
                f"Fetching update descriptor {url} failed: {err}"
            ) from err
        return resp.text

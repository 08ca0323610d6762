"""Exceptions related to update-controller."""

from collections.abc import Sequence

__all__ = [
    "UpdateControllerException",
    "ConfigException",
    "InputException",
    "DescriptorException",
    "ClusterIdentityException",
    "CoordinatorException",
    "ApiServerException",
    "ObjectNotFoundError",
    "ContainerException",
    "HostConfigException",
    "ReadinessTimeoutError",
]


class UpdateControllerException(Exception):
    """Generic base exception used for this library."""


class ConfigException(UpdateControllerException):
    """Raised when the controller configuration is missing or invalid."""


class InputException(UpdateControllerException):
    """Raised when input documents or values are not formatted as expected."""


class DescriptorException(InputException):
    """Raised when an update descriptor cannot be decoded or validated."""


class ClusterIdentityException(UpdateControllerException):
    """Raised when the identity of the deployment target cannot be resolved."""


class CoordinatorException(UpdateControllerException):
    """Raised when talking to the update coordinator fails."""


class ApiServerException(UpdateControllerException):
    """Raised when there is a failure calling the kubernetes API server."""


class ObjectNotFoundError(ApiServerException):
    """Raised when an object is not found in the cluster."""


class ContainerException(UpdateControllerException):
    """Raised when there is a failure talking to the container daemon."""


class HostConfigException(UpdateControllerException):
    """Raised when the host environment file cannot be read or updated."""


class ReadinessTimeoutError(UpdateControllerException):
    """Raised when tracked resources did not become ready before the timeout."""

    def __init__(self, timeout: float, lagging: Sequence[str]) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s waiting for resources to be ready: "
            f"{', '.join(lagging) or 'unknown'}"
        )
        self.timeout = timeout
        self.lagging = list(lagging)

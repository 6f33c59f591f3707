"""Exception hierarchy shared by the request layer, drivers and scheduler."""
from __future__ import annotations

from typing import Optional


class NodeFleetError(RuntimeError):
    pass


class ConfigurationError(NodeFleetError):
    """Credential or identity sources are unusable; raised before any work starts."""


class LifecycleError(NodeFleetError):
    """A driver operation was invoked out of lifecycle order."""


class IpLookupError(NodeFleetError):
    pass


class RequestError(NodeFleetError):
    """Base for failures surfaced by the signed request executor."""

    retryable = False

    def __init__(self, message: str, *, status: Optional[int] = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class TransientRequestError(RequestError):
    """Transport failure or timeout; retried by the executor."""

    retryable = True


class CloudflareBlockedError(TransientRequestError):
    pass


class ServerError(TransientRequestError):
    pass


class MalformedResponseError(RequestError):
    pass


class UnexpectedStatusError(RequestError):
    pass


__all__ = [
    "CloudflareBlockedError",
    "ConfigurationError",
    "IpLookupError",
    "LifecycleError",
    "MalformedResponseError",
    "NodeFleetError",
    "RequestError",
    "ServerError",
    "TransientRequestError",
    "UnexpectedStatusError",
]

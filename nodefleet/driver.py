"""Per-identity lifecycle: register, start a session, check status, heartbeat."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .client import IpLookupClient, SignedRequestExecutor
from .config import FleetSettings
from .errors import LifecycleError
from .heartbeat import HeartbeatTimer
from .identity import Identity, IdentityLogAdapter, RequestContext
from .signature import signature_headers

logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    SESSION_ACTIVE = "session_active"
    STEADY = "steady"


class NodeDriver:
    """Moves one identity through its lifecycle and keeps it alive with pings.

    The driver owns all runtime state of its identity; nothing here is shared
    with other drivers.
    """

    def __init__(
        self,
        identity: Identity,
        executor: SignedRequestExecutor,
        ip_lookup: IpLookupClient,
        settings: FleetSettings,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.identity = identity
        self.executor = executor
        self.ip_lookup = ip_lookup
        self.settings = settings
        self.stop_event = stop_event
        self.context = RequestContext.for_identity(identity)
        self.log = IdentityLogAdapter(logger, self.context)

        self.state = NodeState.UNREGISTERED
        self.public_ip: Optional[str] = None
        self.connected = False
        self.last_status: Dict[str, Any] = {}
        self.heartbeat: Optional[HeartbeatTimer] = None

    @property
    def node_url(self) -> str:
        return f"{self.settings.api_base_url}/{self.identity.node_id}"

    @property
    def ping_path(self) -> str:
        return f"{urlparse(self.settings.api_base_url).path}/{self.identity.node_id}/ping"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.identity.token}",
            "Content-Type": "application/json",
            "Accept": "*/*",
            "User-Agent": self.settings.user_agent,
            "X-Extension-Version": self.settings.extension_version,
        }

    def _require(self, expected: NodeState, operation: str) -> None:
        if self.state is not expected:
            raise LifecycleError(
                f"{operation} requires state {expected.value}, identity {self.identity.label} is {self.state.value}"
            )

    def register(self) -> Any:
        self._require(NodeState.UNREGISTERED, "register")
        hardware_id = self.identity.hardware_id
        device_id = self.identity.device_id
        self.public_ip = self.ip_lookup.fetch(self.context)

        body = {"ipAddress": self.public_ip, "hardwareId": hardware_id, "deviceId": device_id}
        self.log.info("Registering node")
        data = self.executor.execute(self.node_url, "POST", self._headers(), body, self.context)
        self.state = NodeState.REGISTERED
        self.log.info("Registration succeeded")
        return data

    def start_session(self) -> Any:
        self._require(NodeState.REGISTERED, "start_session")
        self.log.info("Starting session")
        data = self.executor.execute(
            f"{self.node_url}/start-session", "POST", self._headers(), {}, self.context
        )
        self.state = NodeState.SESSION_ACTIVE
        self.log.info("Session started")
        return data

    def check_status(self) -> Dict[str, Any]:
        self._require(NodeState.SESSION_ACTIVE, "check_status")
        self.log.info("Checking node status")
        data = self.executor.execute(self.node_url, "GET", self._headers(), None, self.context)
        status = data if isinstance(data, dict) else {}
        self.last_status = status
        self.connected = bool(status.get("isConnected") or False)
        self.state = NodeState.STEADY
        self.log.info(
            "Active (connected=%s), today's reward: %s, total: %s",
            self.connected,
            status.get("todayReward") or 0,
            status.get("totalReward") or 0,
        )
        return status

    def ping(self) -> Any:
        """Send one signed heartbeat using the connectivity captured at status time."""
        self._require(NodeState.STEADY, "ping")
        body = {"isB7SConnected": self.connected}
        headers = self._headers()
        headers.update(signature_headers("POST", self.ping_path, body, self.identity.token))
        self.log.info("Pinging node")
        data = self.executor.execute(f"{self.node_url}/ping", "POST", headers, body, self.context)
        self.log.info("Ping succeeded")
        return data

    def arm_heartbeat(self) -> HeartbeatTimer:
        self._require(NodeState.STEADY, "arm_heartbeat")
        if self.heartbeat is None:
            self.heartbeat = HeartbeatTimer(
                self.ping,
                self.settings.ping_interval_seconds,
                name=f"heartbeat-{self.identity.label}",
                stop_event=self.stop_event,
                log=self.log,
            )
            self.heartbeat.start()
        return self.heartbeat

    def run(self) -> Any:
        """Run the initial lifecycle and return the first ping's response.

        The heartbeat is armed before the first ping, so it keeps running even
        if that ping fails.
        """
        self.log.info("Starting account processing")
        self.register()
        self.start_session()
        self.check_status()
        self.arm_heartbeat()
        return self.ping()

    def stop(self) -> None:
        if self.heartbeat is not None:
            self.heartbeat.cancel()


__all__ = ["NodeDriver", "NodeState"]

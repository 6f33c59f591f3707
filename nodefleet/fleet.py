"""Runs one lifecycle driver per identity concurrently and reports outcomes."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional

from .client import IpLookupClient, SignedRequestExecutor
from .config import FleetSettings
from .credentials import validate_sources
from .driver import NodeDriver, NodeState
from .identity import Identity, build_identities

logger = logging.getLogger(__name__)


@dataclass
class IdentityOutcome:
    identity: Identity
    ok: bool
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def message(self) -> str:
        if self.ok:
            return f"Account {self.identity.label}: initialization complete"
        return f"Account {self.identity.label}: {self.error}"


class FleetScheduler:
    def __init__(
        self,
        executor: SignedRequestExecutor,
        ip_lookup: IpLookupClient,
        settings: FleetSettings,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.executor = executor
        self.ip_lookup = ip_lookup
        self.settings = settings
        self.stop_event = stop_event or threading.Event()
        self.drivers: List[NodeDriver] = []

    def _run_driver(self, driver: NodeDriver) -> IdentityOutcome:
        try:
            result = driver.run()
        except Exception as exc:
            driver.log.error("Account failed: %s", exc)
            return IdentityOutcome(identity=driver.identity, ok=False, error=exc)
        return IdentityOutcome(identity=driver.identity, ok=True, result=result)

    def run(self, tokens: List[str], node_ids: List[str]) -> List[IdentityOutcome]:
        """Run every identity's initial lifecycle; outcomes are returned in input order.

        Raises ``ConfigurationError`` before any network call when the lists
        are empty or of different lengths.
        """
        validate_sources(tokens, node_ids)
        identities = build_identities(tokens, node_ids)
        drivers = [
            NodeDriver(identity, self.executor, self.ip_lookup, self.settings, stop_event=self.stop_event)
            for identity in identities
        ]
        self.drivers.extend(drivers)

        logger.info("Processing %s accounts", len(drivers))
        with ThreadPoolExecutor(max_workers=len(drivers), thread_name_prefix="identity") as pool:
            outcomes = list(pool.map(self._run_driver, drivers))

        self.log_summary(outcomes)
        return outcomes

    @staticmethod
    def log_summary(outcomes: List[IdentityOutcome]) -> None:
        succeeded = 0
        for outcome in outcomes:
            if outcome.ok:
                succeeded += 1
                logger.info(outcome.message)
            else:
                logger.error(outcome.message)
        logger.info("Initial lifecycle finished: %s succeeded, %s failed", succeeded, len(outcomes) - succeeded)

    @property
    def steady_drivers(self) -> List[NodeDriver]:
        return [driver for driver in self.drivers if driver.state is NodeState.STEADY]

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Signal every heartbeat to stop and wait for the timer threads."""
        self.stop_event.set()
        for driver in self.drivers:
            driver.stop()
        for driver in self.drivers:
            if driver.heartbeat is not None:
                driver.heartbeat.join(timeout)
        logger.info("Fleet stopped")


__all__ = ["FleetScheduler", "IdentityOutcome"]

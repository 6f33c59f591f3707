"""Recurring per-identity heartbeat trigger."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class HeartbeatTimer:
    """Invokes ``callback`` every ``interval`` seconds on a daemon thread.

    Each firing runs on its own short-lived thread, so firings keep a fixed
    cadence even when a callback outlives the interval; overlapping firings
    are possible. Failures are logged per firing and never disarm the timer.
    """

    poll_seconds = 0.5

    def __init__(
        self,
        callback: Callable[[], Any],
        interval: float,
        *,
        name: str = "heartbeat",
        stop_event: Optional[threading.Event] = None,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self._log = log or logger
        self._cancelled = threading.Event()
        self._stop_event = stop_event
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.firings = 0

    @property
    def armed(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                raise RuntimeError(f"Heartbeat timer {self.name} already started")
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        self._log.info("Heartbeat armed every %ss", self.interval)

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _stopped(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._stop_event is not None and self._stop_event.is_set()

    def _wait_interval(self) -> bool:
        """Wait one interval; returns True once the timer should stop."""
        deadline = time.monotonic() + self.interval
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._stopped()
            if self._cancelled.wait(min(remaining, self.poll_seconds)) or self._stopped():
                return True

    def _run(self) -> None:
        while not self._wait_interval():
            self.firings += 1
            threading.Thread(
                target=self._fire,
                name=f"{self.name}-{self.firings}",
                daemon=True,
            ).start()
        self._log.info("Heartbeat stopped after %s firings", self.firings)

    def _fire(self) -> None:
        try:
            self.callback()
        except Exception as exc:
            self._log.error("Heartbeat failed: %s", exc)


__all__ = ["HeartbeatTimer"]

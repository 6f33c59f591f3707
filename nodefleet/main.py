"""CLI entrypoint for the node fleet runner."""
from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Optional

from pydantic import ValidationError

from .client import IpLookupClient, SignedRequestExecutor
from .config import FleetSettings, load_settings
from .credentials import load_sources
from .errors import ConfigurationError
from .fleet import FleetScheduler
from .health import create_app, run_health_server


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def _install_signal_handlers(stop_event: threading.Event, logger: logging.Logger) -> None:
    def _handle(signum, _frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(settings: Optional[FleetSettings] = None, stop_event: Optional[threading.Event] = None) -> int:
    configure_logging()
    logger = logging.getLogger(__name__)

    if settings is None:
        try:
            settings = load_settings()
        except ValidationError as exc:
            logger.error("Invalid configuration: %s", exc)
            return 1

    try:
        tokens, node_ids = load_sources(settings.tokens_path, settings.node_ids_path)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    stop_event = stop_event or threading.Event()
    if threading.current_thread() is threading.main_thread():
        _install_signal_handlers(stop_event, logger)

    if settings.health_enabled:
        health_thread = threading.Thread(
            target=run_health_server,
            name="health-api",
            args=(create_app(), settings),
            daemon=True,
        )
        health_thread.start()

    executor = SignedRequestExecutor.from_settings(settings)
    ip_lookup = IpLookupClient(settings.ip_service_url, timeout_seconds=settings.request_timeout_seconds)
    scheduler = FleetScheduler(executor, ip_lookup, settings, stop_event=stop_event)

    try:
        scheduler.run(tokens, node_ids)
        logger.info("Heartbeats running for %s accounts", len(scheduler.steady_drivers))
        stop_event.wait()
    finally:
        scheduler.shutdown(timeout=5.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())

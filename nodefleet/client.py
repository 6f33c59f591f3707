"""HTTP request layer: signed API calls with bounded retries, and public IP lookup."""
from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

import requests

from .config import FleetSettings
from .errors import (
    CloudflareBlockedError,
    IpLookupError,
    MalformedResponseError,
    RequestError,
    ServerError,
    TransientRequestError,
    UnexpectedStatusError,
)
from .identity import IdentityLogAdapter, RequestContext
from .signature import canonical_json

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({200, 201})

SessionFactory = Callable[[], requests.Session]


def _truncate(text: str, limit: int = 200) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


@contextmanager
def _open_session(
    session: Optional[requests.Session],
    session_factory: SessionFactory,
) -> Iterator[requests.Session]:
    """Yield the injected session, or a fresh one closed when the call is done."""
    if session is not None:
        yield session
        return
    owned = session_factory()
    try:
        yield owned
    finally:
        owned.close()


class SignedRequestExecutor:
    """Issues one API request, classifies the result and retries transient failures.

    Holds no per-call state; a single instance is shared by every identity.
    Unless a session is injected, every ``execute`` call opens its own
    ``requests.Session`` and closes it when the call returns, so concurrent
    identities and overlapping heartbeats never share one.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 5.0,
        block_signature: Optional[str] = None,
        session: Optional[requests.Session] = None,
        session_factory: Optional[SessionFactory] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if block_signature is None:
            block_signature = FleetSettings.model_fields["block_signature"].default
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.block_signature = block_signature
        self._session = session
        self._session_factory = session_factory or requests.Session
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: FleetSettings,
        *,
        session: Optional[requests.Session] = None,
        session_factory: Optional[SessionFactory] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> "SignedRequestExecutor":
        return cls(
            timeout_seconds=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
            retry_delay_seconds=settings.retry_delay_seconds,
            block_signature=settings.block_signature,
            session=session,
            session_factory=session_factory,
            sleep=sleep,
        )

    def execute(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Any,
        context: RequestContext,
    ) -> Any:
        """Send the request, retrying transient failures up to ``max_retries`` times."""
        log = IdentityLogAdapter(logger, context)
        with _open_session(self._session, self._session_factory) as session:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return self._attempt(session, url, method, headers, body)
                except TransientRequestError as exc:
                    exc.attempts = attempt
                    if attempt > self.max_retries:
                        log.error("%s %s failed after %s attempts: %s", method, url, attempt, exc)
                        raise
                    log.warning(
                        "%s %s failed (%s); retry %s/%s in %ss",
                        method,
                        url,
                        exc,
                        attempt,
                        self.max_retries,
                        self.retry_delay_seconds,
                    )
                    self._sleep(self.retry_delay_seconds)
                except RequestError as exc:
                    exc.attempts = attempt
                    log.error("%s %s failed without retry: %s", method, url, exc)
                    raise

    def _attempt(
        self,
        session: requests.Session,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Any,
    ) -> Any:
        data = canonical_json(body).encode("utf-8") if body is not None else None
        try:
            response = session.request(
                method,
                url,
                headers=headers,
                data=data,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TransientRequestError(f"Request error: {exc}") from exc

        status = response.status_code
        text = response.text or ""

        if self.block_signature and self.block_signature in text:
            raise CloudflareBlockedError(f"API error: {status} - Cloudflare blocked", status=status)

        # Empty bodies (201 on register) count as an empty object.
        if text.strip():
            try:
                payload = json.loads(text)
            except ValueError as exc:
                raise MalformedResponseError(
                    f"Invalid response (status {status}): {_truncate(text)}", status=status
                ) from exc
        else:
            payload = {}

        if status == 500:
            raise ServerError(f"API error: {status} - {canonical_json(payload)}", status=status)

        if status not in SUCCESS_STATUSES:
            raise UnexpectedStatusError(
                f"API error: {status} - {canonical_json(payload)}", status=status
            )
        return payload


class IpLookupClient:
    """Fetches the public IP address reported during registration."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 60.0,
        session: Optional[requests.Session] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._session_factory = session_factory or requests.Session

    def fetch(self, context: Optional[RequestContext] = None) -> str:
        log = IdentityLogAdapter(logger, context) if context is not None else logger
        try:
            with _open_session(self._session, self._session_factory) as session:
                response = session.get(
                    self.url,
                    timeout=self.timeout_seconds,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
        except (requests.RequestException, ValueError) as exc:
            log.error("IP lookup failed (%s): %s", self.url, exc)
            raise IpLookupError(f"IP lookup failed: {exc}") from exc

        ip = data.get("ip") if isinstance(data, dict) else None
        if not isinstance(ip, str) or not ip.strip():
            log.error("IP lookup response malformed: %s", data)
            raise IpLookupError("IP lookup response missing 'ip'")
        log.info("Public IP address: %s", ip)
        return ip.strip()


__all__ = ["IpLookupClient", "SignedRequestExecutor", "SUCCESS_STATUSES"]

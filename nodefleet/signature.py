"""HMAC request signing for heartbeat pings."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

SIGNATURE_HEADER = "X-Extension-Signature"
TIMESTAMP_HEADER = "X-Timestamp"


def canonical_json(body: Any) -> str:
    """Compact JSON matching the bytes the executor puts on the wire."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def generate_extension_signature(
    method: str,
    path: str,
    body: Any,
    token: str,
    timestamp: str,
) -> str:
    string_to_sign = f"{method}\n{path}\n{canonical_json(body)}\n{timestamp}"
    digest = hmac.new(token.encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha512)
    return digest.hexdigest()


def signature_headers(
    method: str,
    path: str,
    body: Any,
    token: str,
    timestamp: Optional[str] = None,
) -> Dict[str, str]:
    """Return the signature and timestamp headers for one request."""
    if timestamp is None:
        timestamp = str(int(time.time()))
    return {
        SIGNATURE_HEADER: generate_extension_signature(method, path, body, token, timestamp),
        TIMESTAMP_HEADER: timestamp,
    }


__all__ = [
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "canonical_json",
    "generate_extension_signature",
    "signature_headers",
]

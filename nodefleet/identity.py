"""Node identities and the credentials derived from them."""
from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, MutableMapping, Tuple


def hardware_identifier(node_id: str) -> str:
    """Base64 encoded synthetic hardware description for ``node_id``."""
    hardware_info = {
        "cpu_architecture": "x64",
        "cpu_model": f"Custom CPU Model from Node ID {node_id}",
        "cpu_count": 4,
        "total_memory": 8000000000,
    }
    encoded = json.dumps(hardware_info, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(encoded).decode("ascii")


def device_identifier(hardware_id: str) -> str:
    payload = json.dumps({"hardwareIdentifier": hardware_id}, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Identity:
    node_id: str
    token: str = field(repr=False)
    account_index: int = 0

    @property
    def hardware_id(self) -> str:
        return hardware_identifier(self.node_id)

    @property
    def device_id(self) -> str:
        return device_identifier(self.hardware_id)

    @property
    def label(self) -> str:
        return f"{self.account_index + 1}:{self.node_id[-3:]}"


@dataclass(frozen=True)
class RequestContext:
    """Diagnostic labels attached to executor calls."""

    account_index: int
    node_id: str

    @classmethod
    def for_identity(cls, identity: Identity) -> "RequestContext":
        return cls(account_index=identity.account_index, node_id=identity.node_id)

    @property
    def label(self) -> str:
        return f"{self.account_index + 1}:{self.node_id[-3:]}"


class IdentityLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the account label and attaches it as record extras."""

    def __init__(self, logger: logging.Logger, context: RequestContext) -> None:
        super().__init__(logger, {"account_index": context.account_index, "node_id": context.node_id})
        self.context = context

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return f"[account {self.context.label}] {msg}", kwargs


def build_identities(tokens: list[str], node_ids: list[str]) -> list[Identity]:
    """Pair tokens and node ids by position; callers validate lengths first."""
    return [
        Identity(node_id=node_id, token=token, account_index=index)
        for index, (token, node_id) in enumerate(zip(tokens, node_ids))
    ]


__all__ = [
    "Identity",
    "IdentityLogAdapter",
    "RequestContext",
    "build_identities",
    "device_identifier",
    "hardware_identifier",
]

"""Readers for the token and node id source files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def parse_lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def read_lines(path: Path) -> List[str]:
    resolved = Path(path).expanduser()
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            return parse_lines(handle.read())
    except OSError as exc:
        logger.error("Unable to read %s: %s", resolved, exc)
        raise ConfigurationError(f"Unable to read {resolved}: {exc}") from exc


def validate_sources(tokens: List[str], node_ids: List[str]) -> None:
    if not tokens or not node_ids:
        raise ConfigurationError("Token list or node id list is empty")
    if len(tokens) != len(node_ids):
        raise ConfigurationError(
            f"Number of tokens ({len(tokens)}) does not match number of node ids ({len(node_ids)})"
        )


def load_sources(tokens_path: Path, node_ids_path: Path) -> Tuple[List[str], List[str]]:
    """Read and validate both sources; raises ``ConfigurationError`` on any problem."""
    tokens = read_lines(tokens_path)
    node_ids = read_lines(node_ids_path)
    validate_sources(tokens, node_ids)
    logger.info("Loaded %s accounts from %s and %s", len(tokens), tokens_path, node_ids_path)
    return tokens, node_ids


__all__ = ["load_sources", "parse_lines", "read_lines", "validate_sources"]

"""
Structured logging helpers for import workflows.
"""

from __future__ import annotations

import json
import logging
from typing import Any

HASH_LOG_PREFIX_LENGTH = 16


def short_hash(file_hash: str) -> str:
    """
    Truncate a content hash for log output.
    """

    return file_hash[:HASH_LOG_PREFIX_LENGTH]


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))

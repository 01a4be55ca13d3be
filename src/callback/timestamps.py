"""Timestamp header normalization and replay-window check.

X-Lark-Request-Timestamp is usually epoch seconds, but some gateways forward
a Go-style datetime such as ``2025-11-24 15:58:49.153131788 +0800 CST
m=+0.000000001``. Both are reduced to integer epoch seconds here.
"""

from __future__ import annotations

import logging
import re
import time

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")
_INTEGER = re.compile(r"^\s*[+-]?\d+\s*$")
_MONOTONIC_SUFFIX = re.compile(r"\s+m=.*$")
_DATETIME_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\.\d+)?(.*)$")
_ZONE_TAIL = re.compile(r"^\s*(?P<offset>[+-]\d{2}:?\d{2})?\s*(?P<name>[A-Za-z]{1,5})?\s*$")


def normalize_timestamp(raw: str) -> int:
    """Return epoch seconds for ``raw``, or 0 when it cannot be parsed.

    A result of 0 is never inside a realistic tolerance window, so callers
    treat it as an invalid timestamp without a separate error path.
    """
    if _NUMERIC.match(raw):
        try:
            if _INTEGER.match(raw):
                return int(raw)
            return int(float(raw))
        except (ValueError, OverflowError):
            # Digit strings past the int conversion limit, or "1e400".
            return 0

    text = _MONOTONIC_SUFFIX.sub("", raw)

    match = _DATETIME_PREFIX.match(text)
    tail = _ZONE_TAIL.match(match.group(2)) if match else None
    if match and tail:
        # Only an offset and/or a short zone name may follow; with both
        # ("+0800 CST") the name is dropped and the offset wins.
        zone = tail.group("offset") or tail.group("name") or ""
        parsed = _parse_datetime(f"{match.group(1)} {zone}")
        if parsed is not None:
            return parsed

    parsed = _parse_datetime(text)
    if parsed is not None:
        return parsed

    logger.debug("Unparseable callback timestamp: %r", raw)
    return 0


def _parse_datetime(text: str) -> int | None:
    if not text.strip():
        return None
    try:
        value = date_parser.parse(text)
        # Naive values are local time, matching datetime.timestamp().
        return int(value.timestamp())
    except (ValueError, OverflowError, OSError):
        return None


def within_tolerance(timestamp: str, tolerance_seconds: int, now: int | None = None) -> bool:
    """Return True if ``timestamp`` is within ``tolerance_seconds`` of ``now``.

    The boundary is inclusive. An empty header is always out of window.
    """
    if timestamp == "":
        return False
    if now is None:
        now = int(time.time())
    return abs(now - normalize_timestamp(timestamp)) <= tolerance_seconds

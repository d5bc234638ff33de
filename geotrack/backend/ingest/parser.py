"""
ingest/parser.py

Converts a raw browser observation (one completed web request) into a typed
ConnectionEvent.

Accepted shape (camelCase as the browser reports it, snake_case also read):
    {
        "ip":              "93.184.216.34",         # address actually connected to
        "domain":          "example.com",           # or "url": "https://example.com/x"
        "tabId":           12,                      # optional, default -1
        "timestamp":       1718000000123,           # optional, ms or s since epoch
        "responseHeaders": [{"name": "...", "value": "..."}] | {"Name": "value"}
    }

Forwarding headers (checked in this order):
    CF-Connecting-IP  → X-Forwarded-For (first hop) → X-Real-IP

When a header reveals a valid address that differs from the observed one,
the revealed address becomes `ip` and the observed one `reroute_target`.

Raises InvalidEvent for anything the pipeline cannot classify.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any
from urllib.parse import urlsplit

from ..addresses import parse_ip
from ..errors import InvalidEvent
from ..models import ConnectionEvent
from ..tracking import is_malformed

logger = logging.getLogger(__name__)

FORWARDING_HEADERS: tuple[str, ...] = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")

# Anything above this is a millisecond timestamp (year 33658 in seconds)
_MS_THRESHOLD = 1e12


def _normalise_headers(raw: Any) -> dict[str, str]:
    """Lower-cased header map from a list of {name, value} or a plain dict."""
    headers: dict[str, str] = {}
    if isinstance(raw, dict):
        items = raw.items()
    elif isinstance(raw, list):
        items = [
            (h.get("name"), h.get("value"))
            for h in raw
            if isinstance(h, dict)
        ]
    else:
        return headers

    for name, value in items:
        if isinstance(name, str) and value is not None:
            # first occurrence wins, as with repeated headers on the wire
            headers.setdefault(name.strip().lower(), str(value))
    return headers


def revealed_address(headers: dict[str, str]) -> str | None:
    """First valid address exposed by a forwarding header, else None."""
    for name in FORWARDING_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        addr = parse_ip(candidate)
        if addr is not None:
            return str(addr)
        logger.debug("Ignoring unparsable %s header value %r", name, value)
    return None


def _hostname(raw: dict) -> str | None:
    domain = raw.get("domain")
    if isinstance(domain, str) and not is_malformed(domain):
        return domain.strip().lower()
    url = raw.get("url")
    if isinstance(url, str) and url.strip():
        try:
            host = urlsplit(url.strip()).hostname
        except ValueError:
            return None
        return host or None
    return None


def _timestamp(raw: dict) -> float:
    value = raw.get("timestamp", raw.get("timeStamp"))
    if value is None:
        return time.time()
    try:
        ts = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidEvent("invalid_event", f"bad timestamp {value!r}", {"timestamp": value}) from exc
    if not math.isfinite(ts):
        raise InvalidEvent("invalid_event", f"non-finite timestamp {value!r}", {"timestamp": str(value)})
    return ts / 1000.0 if ts > _MS_THRESHOLD else ts


def _tab_id(raw: dict) -> int:
    value = raw.get("tabId", raw.get("tab_id", -1))
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidEvent("invalid_event", f"bad tab id {value!r}", {"tab_id": value}) from exc


def parse_observation(raw: dict) -> ConnectionEvent:
    """
    Build a ConnectionEvent from *raw*.

    Raises:
        InvalidEvent: missing / placeholder ip or domain, or unusable fields.
    """
    if not isinstance(raw, dict):
        raise InvalidEvent("invalid_event", "observation must be an object", {"type": type(raw).__name__})

    ip = raw.get("ip")
    if not isinstance(ip, str) or is_malformed(ip):
        raise InvalidEvent("invalid_event", "missing ip", {"ip": ip})
    ip = ip.strip()

    domain = _hostname(raw)
    if domain is None:
        raise InvalidEvent(
            "invalid_event",
            "missing domain",
            {"domain": raw.get("domain"), "url": raw.get("url")},
        )

    headers = _normalise_headers(raw.get("responseHeaders", raw.get("response_headers")))
    reroute_target = None
    revealed = revealed_address(headers)
    if revealed is not None and parse_ip(ip) != parse_ip(revealed):
        logger.debug("Forwarding header reveals %s behind %s for %s", revealed, ip, domain)
        reroute_target = ip
        ip = revealed

    return ConnectionEvent(
        ip=ip,
        domain=domain,
        tab_id=_tab_id(raw),
        timestamp=_timestamp(raw),
        reroute_target=reroute_target,
    )

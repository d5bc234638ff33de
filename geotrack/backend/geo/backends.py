"""
geo/backends.py

Public IP-geolocation backends, tried in order by GeoResolver.

Each backend knows its URL and how to turn its JSON body into a GeoInfo.
A parser returns None when the body is a well-formed "no answer"
(rate-limited, reserved range, ...), which counts as a failed attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .models import UNKNOWN, GeoInfo


@dataclass(frozen=True, slots=True)
class GeoBackend:
    name: str
    url_template: str
    parse: Callable[[str, dict[str, Any]], GeoInfo | None]

    def url_for(self, ip: str) -> str:
        return self.url_template.format(ip=ip)


def _parse_ip_api(ip: str, data: dict[str, Any]) -> GeoInfo | None:
    # {"status": "success", "country": "Germany", "city": "Berlin", ...}
    if data.get("status") != "success":
        return None
    return GeoInfo(
        ip=ip,
        city=data.get("city") or UNKNOWN,
        country=data.get("country") or UNKNOWN,
        source="ip-api.com",
    )


def _parse_ipapi_co(ip: str, data: dict[str, Any]) -> GeoInfo | None:
    # {"country_name": "Germany", "city": "Berlin", ...} or {"error": true, ...}
    if not data or data.get("error"):
        return None
    return GeoInfo(
        ip=ip,
        city=data.get("city") or UNKNOWN,
        country=data.get("country_name") or UNKNOWN,
        source="ipapi.co",
    )


IP_API = GeoBackend("ip-api.com", "http://ip-api.com/json/{ip}", _parse_ip_api)
IPAPI_CO = GeoBackend("ipapi.co", "https://ipapi.co/{ip}/json/", _parse_ipapi_co)

DEFAULT_BACKENDS: tuple[GeoBackend, ...] = (IP_API, IPAPI_CO)

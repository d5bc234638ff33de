from .backends import DEFAULT_BACKENDS, IP_API, IPAPI_CO, GeoBackend
from .cache import GeoCache
from .models import GeoInfo
from .resolver import GeoResolver

__all__ = [
    "DEFAULT_BACKENDS",
    "GeoBackend",
    "GeoCache",
    "GeoInfo",
    "GeoResolver",
    "IPAPI_CO",
    "IP_API",
]

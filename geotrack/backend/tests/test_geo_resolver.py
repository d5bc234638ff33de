"""
tests/test_geo_resolver.py

Tests for geo/resolver.py.
All HTTP is served by httpx.MockTransport — no network access required.
Backoff is set to 0 so retries do not slow the suite down.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from geotrack.backend.geo import GeoResolver
from geotrack.backend.geo.models import SOURCE_FALLBACK, SOURCE_LOCAL
from geotrack.backend.metrics import METRICS


@pytest.fixture(autouse=True)
def _reset_metrics():
    METRICS.reset_all()
    yield


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

IP_API_OK = {"status": "success", "country": "Germany", "city": "Berlin"}
IPAPI_CO_OK = {"country_name": "France", "city": "Paris"}


class Backend:
    """Records requests per host and answers from a per-host script."""

    def __init__(self, **responses) -> None:
        # host → list of (status, json) consumed in order; last one repeats
        self.responses = responses
        self.calls: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls[host] = self.calls.get(host, 0) + 1
        script = self.responses.get(host, [(500, {})])
        status, body = script[min(self.calls[host], len(script)) - 1]
        return httpx.Response(status, json=body)


def make_resolver(backend, **kwargs) -> GeoResolver:
    kwargs.setdefault("backoff_seconds", 0.0)
    return GeoResolver(transport=httpx.MockTransport(backend), **kwargs)


# ---------------------------------------------------------------------------
# lookup()
# ---------------------------------------------------------------------------

class TestLookup:

    @pytest.mark.asyncio
    async def test_first_backend_success(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)
        info = await r.lookup("8.8.8.8")
        assert info.country == "Germany"
        assert info.city == "Berlin"
        assert info.source == "ip-api.com"
        assert backend.calls == {"ip-api.com": 1}

    @pytest.mark.asyncio
    async def test_result_is_cached(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)
        await r.lookup("8.8.8.8")
        await r.lookup("8.8.8.8")
        assert backend.calls == {"ip-api.com": 1}
        assert r.get_cached("8.8.8.8").country == "Germany"
        assert METRICS.geo_cache_hits.value >= 1

    @pytest.mark.asyncio
    async def test_retry_then_success_on_same_backend(self):
        backend = Backend(**{"ip-api.com": [(500, {}), (200, IP_API_OK)]})
        r = make_resolver(backend)
        info = await r.lookup("8.8.8.8")
        assert info.source == "ip-api.com"
        assert backend.calls == {"ip-api.com": 2}

    @pytest.mark.asyncio
    async def test_falls_through_to_second_backend(self):
        backend = Backend(**{"ip-api.com": [(500, {})], "ipapi.co": [(200, IPAPI_CO_OK)]})
        r = make_resolver(backend)
        info = await r.lookup("8.8.8.8")
        assert info.country == "France"
        assert info.source == "ipapi.co"
        assert backend.calls == {"ip-api.com": 2, "ipapi.co": 1}

    @pytest.mark.asyncio
    async def test_failed_status_body_counts_as_failure(self):
        backend = Backend(**{
            "ip-api.com": [(200, {"status": "fail", "message": "reserved range"})],
            "ipapi.co": [(200, IPAPI_CO_OK)],
        })
        r = make_resolver(backend)
        assert (await r.lookup("8.8.8.8")).source == "ipapi.co"

    @pytest.mark.asyncio
    async def test_non_object_body_counts_as_failed_attempt(self):
        backend = Backend(**{
            "ip-api.com": [(200, ["not", "an", "object"])],
            "ipapi.co": [(200, IPAPI_CO_OK)],
        })
        r = make_resolver(backend)
        info = await r.lookup("8.8.8.8")
        assert info.source == "ipapi.co"
        assert backend.calls == {"ip-api.com": 2, "ipapi.co": 1}
        assert r.stats["request_errors"] == 2

    @pytest.mark.asyncio
    async def test_single_backend_when_multiple_apis_disabled(self):
        backend = Backend(**{"ip-api.com": [(500, {})], "ipapi.co": [(200, IPAPI_CO_OK)]})
        r = make_resolver(backend, use_multiple_apis=False)
        info = await r.lookup("8.8.8.8")
        assert info.source == SOURCE_FALLBACK
        assert "ipapi.co" not in backend.calls

    @pytest.mark.asyncio
    async def test_all_backends_fail_returns_sentinel(self):
        backend = Backend()
        r = make_resolver(backend)
        info = await r.lookup("8.8.8.8")
        assert info.source == SOURCE_FALLBACK
        assert info.is_known is False
        assert backend.calls == {"ip-api.com": 2, "ipapi.co": 2}
        assert METRICS.geo_failures.value == 1
        assert r.stats["unavailable"] == 1
        assert r.get_cached("8.8.8.8").source == SOURCE_FALLBACK

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        r = make_resolver(handler)
        info = await r.lookup("8.8.8.8")
        assert info.source == SOURCE_FALLBACK
        assert r.stats["request_errors"] == 4

    @pytest.mark.asyncio
    async def test_private_address_never_hits_network(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)
        info = await r.lookup("192.168.1.5")
        assert info.source == SOURCE_LOCAL
        assert backend.calls == {}

    @pytest.mark.asyncio
    async def test_reconfigure_toggles_backend_chain(self):
        backend = Backend(**{"ip-api.com": [(500, {})], "ipapi.co": [(200, IPAPI_CO_OK)]})
        r = make_resolver(backend, use_multiple_apis=False)
        r.reconfigure(use_multiple_apis=True)
        assert (await r.lookup("8.8.8.8")).source == "ipapi.co"


# ---------------------------------------------------------------------------
# prefetch() + close()
# ---------------------------------------------------------------------------

class TestPrefetch:

    def test_prefetch_without_loop_returns_none(self):
        r = make_resolver(Backend())
        assert r.prefetch("8.8.8.8") is None

    @pytest.mark.asyncio
    async def test_prefetch_delivers_result(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)
        results = []
        task = r.prefetch("8.8.8.8", on_result=results.append)
        await task
        await asyncio.sleep(0)
        assert [i.country for i in results] == ["Germany"]
        assert r.inflight_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_prefetches_share_one_lookup(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)
        results = []
        t1 = r.prefetch("8.8.8.8", on_result=results.append)
        t2 = r.prefetch("8.8.8.8", on_result=results.append)
        assert t1 is t2
        await t1
        await asyncio.sleep(0)
        assert backend.calls == {"ip-api.com": 1}
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_close_discards_late_results(self):
        release = asyncio.Event()

        async def slow_handler(request):
            await release.wait()
            return httpx.Response(200, json=IP_API_OK)

        r = make_resolver(slow_handler)
        results = []
        r.prefetch("8.8.8.8", on_result=results.append)
        await asyncio.sleep(0)

        await r.close()
        release.set()
        await asyncio.sleep(0)

        assert results == []
        assert r.generation == 1
        assert r.inflight_count == 0
        assert r.stats["late_results_discarded"] == 1

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        backend = Backend(**{"ip-api.com": [(200, IP_API_OK)]})
        r = make_resolver(backend)

        def explode(_info):
            raise RuntimeError("subscriber bug")

        task = r.prefetch("8.8.8.8", on_result=explode)
        await task
        await asyncio.sleep(0)
        assert r.get_cached("8.8.8.8").country == "Germany"

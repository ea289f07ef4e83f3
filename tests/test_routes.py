import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

import firewatch.cache as cache_module
import firewatch.services as services_module
from firewatch.cache import RESULT_STORE, CacheService
from firewatch.cache_routes import _is_local
from firewatch.errors import UpstreamFetchFailure
from firewatch.fires.service import FireService
from firewatch.fires.stats import FireStatsService
from firewatch.geo.boundaries import MunicipalityMatcher
from firewatch.geo.enrichment import LocationEnricher
from firewatch.main import app
from firewatch.settings import S

client = TestClient(app)

NOW = "2024-08-01T12:00:00.000Z"

MATCHER = MunicipalityMatcher.from_features(
    {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "Sinop", "comandoRegional": "CR VI"},
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[-56, -13], [-54, -13], [-54, -11], [-56, -11], [-56, -13]]],
                },
            }
        ],
    }
)


class StubFetcher:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error

    async def fetch_fires(self, options):
        if self.error is not None:
            raise self.error
        return self.rows


class UnusedGeocoder:
    async def batch_geocode(self, points):
        raise AssertionError("geocoder should not be called")


class StubLocationCache:
    def __init__(self):
        self.cleared = []

    async def clear_prefixes(self, prefixes, *, dry_run=False, batch_size=1000):
        self.cleared.append((list(prefixes), dry_run))
        return {"deleted": 4, "by_prefix": {p: 4 for p in prefixes}, "dry_run": dry_run}


def record(i, sensor="MODIS_NRT"):
    return {
        "latitude": -12.0,
        "longitude": -55.0,
        "acq_date": "2024-08-01",
        "acq_time": "01:00",
        "acq_datetime": f"2024-08-01T01:{i:02d}:00Z",
        "sensor": sensor,
        "frp": float(i),
    }


@pytest.fixture
def wired(monkeypatch):
    def _wire(rows=None, error=None, max_records_all=10000):
        cache = CacheService(default_ttl=60)
        enricher = LocationEnricher(MATCHER, UnusedGeocoder())
        fire_service = FireService(StubFetcher(rows, error), enricher, max_records_all=max_records_all, now=lambda: NOW)
        monkeypatch.setattr(cache_module, "cache_service", cache)
        monkeypatch.setattr(cache_module, "location_cache", None)
        monkeypatch.setattr(services_module, "fire_service", fire_service)
        monkeypatch.setattr(services_module, "stats_service", FireStatsService(fire_service, cache))
        monkeypatch.setattr(services_module, "matcher", MATCHER)
        return cache

    return _wire


@pytest.fixture
def admin(monkeypatch):
    monkeypatch.setattr(S, "cache_clear_token", "secret")
    monkeypatch.setattr(S, "cache_clear_local_only", False)
    return {"Authorization": "Bearer secret"}


def test_health(wired):
    wired()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "cacheEnabled": True, "boundaries": 1}


def test_list_fires_paginated(wired):
    wired(rows=[record(i) for i in range(30)])

    response = client.get("/api/firms/fires", params={"dt": "2024-08-01", "page": "2", "limit": "10"})

    assert response.status_code == 200
    body = response.json()
    assert [r["frp"] for r in body["dados"]] == [float(i) for i in range(10, 20)]
    assert body["metadados"]["paginacao"] == {"paginaAtual": 2, "itensPorPagina": 10, "totalPaginas": 3}


def test_list_fires_all_over_limit_is_400(wired):
    wired(rows=[record(i) for i in range(5)], max_records_all=4)

    response = client.get("/api/firms/fires", params={"all": "true"})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "over_limit"
    assert body["details"] == {"limit": 4, "total": 5}


def test_upstream_failure_is_502(wired):
    wired(error=UpstreamFetchFailure("FIRMS request timed out for MODIS_NRT"))
    response = client.get("/api/firms/fires")
    assert response.status_code == 502
    assert response.json()["code"] == "upstream_fetch_failed"


def test_fire_locations(wired):
    wired(rows=[record(1), record(2)])

    response = client.get("/api/firms/fires/locations", params={"dt": "2024-08-01"})

    assert response.status_code == 200
    body = response.json()
    assert body["metadados"]["totalFocos"] == 2
    assert [f["location"] for f in body["firesWithLocation"]] == [
        {"municipality": "Sinop", "regionalCommand": "CR VI", "city": "Sinop"}
    ] * 2


def test_fire_stats(wired):
    wired(rows=[record(1), record(2)])
    response = client.get("/api/firms/fires/stats", params={"dt": "2024-08-01"})
    assert response.status_code == 200
    assert response.json()["estatisticas"]["porSensor"] == {"MODIS_NRT": 2}


def test_weekly_stats(wired):
    wired(rows=[record(1)])
    response = client.get("/api/firms/fires/weekly-stats")
    assert response.status_code == 200
    assert len(response.json()["dados"]) == 7


def test_cache_admin_disabled_without_token(wired, monkeypatch):
    wired()
    monkeypatch.setattr(S, "cache_clear_token", "")
    assert client.get("/api/firms/cache/status").status_code == 503


def test_cache_admin_rejects_wrong_token(wired, admin):
    wired()
    response = client.get("/api/firms/cache/status", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_cache_admin_accepts_header_token(wired, admin):
    wired()
    response = client.get("/api/firms/cache/status", headers={"x-admin-token": "secret"})
    assert response.status_code == 200
    assert response.json()["enabled"] is True


def test_cache_clear(wired, admin):
    cache = wired()
    cache.set(RESULT_STORE, "k", [1])

    response = client.post("/api/firms/cache/clear", json={}, headers=admin)

    assert response.status_code == 200
    assert response.json()["cleared"][RESULT_STORE] == 1
    assert cache.get(RESULT_STORE, "k") is None


def test_cache_clear_locations(wired, admin, monkeypatch):
    wired()
    location_cache = StubLocationCache()
    monkeypatch.setattr(cache_module, "location_cache", location_cache)

    response = client.post("/api/firms/cache/clear", json={"include_locations": True}, headers=admin)

    assert response.status_code == 200
    assert response.json()["locations"]["deleted"] == 4
    assert location_cache.cleared == [(["geocode:rev"], False)]


def test_cache_clear_locations_without_redis(wired, admin):
    wired()
    response = client.post("/api/firms/cache/clear", json={"include_locations": True}, headers=admin)
    assert response.status_code == 400


def test_cache_disable_and_enable(wired, admin):
    cache = wired()

    assert client.post("/api/firms/cache/disable", headers=admin).json() == {"ok": True, "enabled": False}
    assert cache.is_enabled() is False
    assert client.get("/health").json()["cacheEnabled"] is False

    assert client.post("/api/firms/cache/enable", headers=admin).json() == {"ok": True, "enabled": True}
    assert cache.is_enabled() is True


def test_cache_admin_rejects_non_local_caller(wired, admin, monkeypatch):
    wired()
    monkeypatch.setattr(S, "cache_clear_local_only", True)
    # TestClient reports its peer as "testclient", which is not a loopback host
    response = client.get("/api/firms/cache/status", headers=admin)
    assert response.status_code == 403


def test_loopback_callers_are_local():
    def request_from(host):
        return Request({"type": "http", "method": "GET", "path": "/", "headers": [], "client": (host, 50000)})

    assert _is_local(request_from("127.0.0.1"))
    assert _is_local(request_from("::1"))
    assert not _is_local(request_from("10.0.0.7"))
    assert not _is_local(request_from("testclient"))


def test_cache_clear_dry_run_keeps_entries(wired, admin, monkeypatch):
    cache = wired()
    cache.set(RESULT_STORE, "k", [1])
    location_cache = StubLocationCache()
    monkeypatch.setattr(cache_module, "location_cache", location_cache)

    response = client.post(
        "/api/firms/cache/clear", json={"include_locations": True, "dry_run": True}, headers=admin
    )

    assert response.status_code == 200
    body = response.json()
    assert body["dry_run"] is True
    assert body["cleared"][RESULT_STORE] == 1
    assert cache.get(RESULT_STORE, "k") == [1]
    assert location_cache.cleared == [(["geocode:rev"], True)]

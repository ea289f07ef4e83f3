from unittest.mock import MagicMock

import pytest

import firewatch.fires.service as service_module
from firewatch.errors import OverLimitError
from firewatch.fires.service import FireService, get_total_pages

NOW = "2024-08-01T12:00:00.000Z"


class StubFetcher:
    def __init__(self, rows):
        self.rows = rows
        self.calls = []

    async def fetch_fires(self, options):
        self.calls.append(dict(options))
        return self.rows


class StubEnricher:
    def __init__(self):
        self.seen = None

    async def add_location_data(self, fires):
        self.seen = list(fires)
        return [{**f, "location": {"municipality": "Sinop", "regionalCommand": "CR VI", "city": "Sinop"}} for f in fires]


def record(i, sensor="MODIS_NRT"):
    return {
        "latitude": -12.0 - i / 1000,
        "longitude": -55.0,
        "acq_date": "2024-08-01",
        "acq_time": "00:00",
        "acq_datetime": f"2024-08-01T00:00:{i % 60:02d}Z" if i < 60 else f"2024-08-01T{i // 60:02d}:00:00Z",
        "sensor": sensor,
        "frp": float(i),
    }


def make_service(rows, max_records_all=10000, enricher=None):
    fetcher = StubFetcher(rows)
    return FireService(fetcher, enricher or StubEnricher(), max_records_all=max_records_all, now=lambda: NOW), fetcher


@pytest.mark.asyncio
async def test_all_mode_returns_sorted_records_without_pagination():
    rows = [record(1, "VIIRS_SNPP_NRT"), record(2, "MODIS_NRT"), record(3, "VIIRS_NOAA20_NRT")]
    svc, _ = make_service(rows)

    result = await svc.list_formatted_paginated({"dt": "2024-08-01", "all": "true"})

    assert [r["sensor"] for r in result["dados"]] == ["MODIS_NRT", "VIIRS_NOAA20_NRT", "VIIRS_SNPP_NRT"]
    assert result["metadados"]["totalFocos"] == 3
    assert result["metadados"]["timestampConsulta"] == NOW
    assert "paginacao" not in result["metadados"]


@pytest.mark.asyncio
async def test_metadata_omits_missing_time_range():
    svc, _ = make_service([record(1)])
    result = await svc.list_formatted_paginated({"dt": "2024-08-01", "dr": "2"})
    assert result["metadados"]["parametrosBusca"] == {"data": "2024-08-01", "diasConsiderados": 2, "ordenacao": "sensor"}


@pytest.mark.asyncio
async def test_metadata_includes_time_range_and_forwards_it():
    svc, fetcher = make_service([record(1)])
    result = await svc.list_formatted_paginated({"dt": "2024-08-01", "hi": "10:00", "hf": "12:00"})
    assert result["metadados"]["parametrosBusca"]["intervaloHoras"] == {"inicio": "10:00", "fim": "12:00"}
    assert fetcher.calls == [{"date": "2024-08-01", "dayRange": 1, "timeRange": {"start": "10:00", "end": "12:00"}}]


@pytest.mark.asyncio
async def test_second_page_of_sixty():
    rows = [record(i) for i in range(60)]
    svc, _ = make_service(rows)

    result = await svc.list_formatted_paginated({"dt": "2024-08-01", "page": "2", "limit": "25"})

    assert [r["frp"] for r in result["dados"]] == [float(i) for i in range(25, 50)]
    assert result["metadados"]["paginacao"] == {"paginaAtual": 2, "itensPorPagina": 25, "totalPaginas": 3}
    assert result["metadados"]["totalFocos"] == 60


@pytest.mark.asyncio
async def test_page_past_the_end_is_empty():
    svc, _ = make_service([record(i) for i in range(5)])
    result = await svc.list_formatted_paginated({"page": "9"})
    assert result["dados"] == []
    assert result["metadados"]["paginacao"]["totalPaginas"] == 1


@pytest.mark.asyncio
async def test_all_mode_accepts_exactly_the_limit():
    svc, _ = make_service([record(0)] * 10000)
    result = await svc.list_formatted_paginated({"all": "true"})
    assert result["metadados"]["totalFocos"] == 10000


@pytest.mark.asyncio
async def test_all_mode_rejects_one_over_the_limit():
    svc, _ = make_service([record(0)] * 10001)
    with pytest.raises(OverLimitError) as exc_info:
        await svc.list_formatted_paginated({"all": "true"})
    assert exc_info.value.limit == 10000
    assert exc_info.value.total == 10001


@pytest.mark.asyncio
async def test_paged_mode_ignores_the_all_limit():
    svc, _ = make_service([record(i) for i in range(30)], max_records_all=10)
    result = await svc.list_formatted_paginated({})
    assert len(result["dados"]) == 25


@pytest.mark.asyncio
async def test_empty_fetch_skips_format_routing(monkeypatch):
    router = MagicMock()
    monkeypatch.setattr(service_module, "route_by_format", router)
    svc, _ = make_service([])

    result = await svc.list_formatted_paginated({"all": "true"})

    router.assert_not_called()
    assert result["dados"] == []
    assert result["metadados"]["totalFocos"] == 0


@pytest.mark.asyncio
async def test_list_all_with_location_forces_all_mode():
    enricher = StubEnricher()
    svc, _ = make_service([record(i) for i in range(30)], enricher=enricher)

    result = await svc.list_all_with_location({"page": "2", "limit": "5"})

    assert len(enricher.seen) == 30
    assert len(result["firesWithLocation"]) == 30
    assert result["firesWithLocation"][0]["location"]["municipality"] == "Sinop"
    assert "paginacao" not in result["metadados"]


@pytest.mark.asyncio
async def test_list_all_with_location_respects_the_limit():
    enricher = StubEnricher()
    svc, _ = make_service([record(i) for i in range(11)], max_records_all=10, enricher=enricher)
    with pytest.raises(OverLimitError):
        await svc.list_all_with_location({})
    assert enricher.seen is None


def test_total_pages():
    assert get_total_pages(60, 25) == 3
    assert get_total_pages(0, 25) == 0
    assert get_total_pages(10, 0) == 0

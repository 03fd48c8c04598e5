"""
Tests for the weather-driven disease alert job.

Covers:
  - One forecast call per distinct coordinate pair
  - Invalid coordinates and provider failures skipped per location
  - Malformed provider responses skipped per location
  - Dedup across repeated runs
"""

from datetime import timedelta

import httpx
import pytest
from conftest import NOW, InMemoryUsageReader, make_farm

from core.errors import DetectionRunError, WeatherProviderError
from weather.client import ForecastPeriod, OpenWeatherClient
from weather.job import group_farms_by_location, run_disease_prediction

RAINY_HUMID = [
    ForecastPeriod(NOW + timedelta(hours=3 * i), 24.0, 90.0, ("Rain",))
    for i in range(8)
]
CLEAR = [ForecastPeriod(NOW + timedelta(hours=3 * i), 22.0, 40.0, ("Clear",)) for i in range(8)]


class FakeWeatherClient:
    def __init__(self, forecasts, failing=()):
        self.forecasts = forecasts
        self.failing = set(failing)
        self.calls = []

    async def fetch_forecast(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        if (latitude, longitude) in self.failing:
            raise WeatherProviderError("HTTP 503")
        return self.forecasts.get((latitude, longitude), [])


def test_group_farms_by_location():
    a = make_farm(latitude=10.0, longitude=20.0)
    b = make_farm(latitude=10.0, longitude=20.0)
    c = make_farm(latitude=200.0, longitude=20.0)
    d = make_farm(latitude=10.0, longitude=-181.0)

    locations, invalid = group_farms_by_location([a, b, c, d])

    assert locations == {(10.0, 20.0): [a, b]}
    assert invalid == [c, d]


@pytest.mark.asyncio
async def test_invalid_location_is_skipped_without_halting_others(store, settings):
    shared_a = make_farm(latitude=10.0, longitude=20.0)
    shared_b = make_farm(latitude=10.0, longitude=20.0)
    broken = make_farm(latitude=200.0, longitude=20.0)
    unplaced = make_farm(latitude=None, longitude=None)
    reader = InMemoryUsageReader(farms=[shared_a, broken, shared_b, unplaced])
    client = FakeWeatherClient({(10.0, 20.0): RAINY_HUMID})

    summary = await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)

    assert client.calls == [(10.0, 20.0)]
    assert summary.alerts_created == 2
    assert summary.farms_skipped == 1
    assert summary.metadata["locations_skipped"] == 1
    assert {farm_id for farm_id, _ in store.disease_alerts} == {shared_a.farm_id, shared_b.farm_id}
    assert store.disease_alerts[0][1].disease_name == "Haemorrhagic Septicaemia (HS)"


@pytest.mark.asyncio
async def test_provider_failure_only_skips_that_location(store, settings):
    failing = make_farm(latitude=-5.0, longitude=30.0)
    healthy = make_farm(latitude=10.0, longitude=20.0)
    reader = InMemoryUsageReader(farms=[failing, healthy])
    client = FakeWeatherClient({(10.0, 20.0): RAINY_HUMID}, failing=[(-5.0, 30.0)])

    summary = await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)

    assert len(client.calls) == 2
    assert summary.alerts_created == 1
    assert summary.farms_failed == 1
    assert summary.status == "partial"
    assert summary.metadata["locations_failed"] == 1
    assert summary.metadata["locations_evaluated"] == 1


@pytest.mark.asyncio
async def test_clear_forecast_creates_nothing(store, settings):
    reader = InMemoryUsageReader(farms=[make_farm(latitude=10.0, longitude=20.0)])
    client = FakeWeatherClient({(10.0, 20.0): CLEAR})

    summary = await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)

    assert summary.alerts_created == 0
    assert summary.status == "success"


@pytest.mark.asyncio
async def test_repeated_run_deduplicates(store, settings):
    reader = InMemoryUsageReader(farms=[make_farm(latitude=10.0, longitude=20.0)])
    client = FakeWeatherClient({(10.0, 20.0): RAINY_HUMID})

    await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)
    second = await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)

    assert second.alerts_created == 0
    assert second.duplicates_skipped == 1
    assert len(store.disease_alerts) == 1


@pytest.mark.asyncio
async def test_pause_between_provider_calls(store, settings, monkeypatch):
    pauses = []

    async def _fake_sleep(seconds):
        pauses.append(seconds)

    monkeypatch.setattr("weather.job.asyncio.sleep", _fake_sleep)
    settings.weather_request_pause_seconds = 1.0
    farms = [make_farm(latitude=float(i), longitude=20.0) for i in range(3)]
    client = FakeWeatherClient({})

    await run_disease_prediction(
        client=client, reader=InMemoryUsageReader(farms=farms), store=store, settings=settings, now=NOW
    )

    assert len(client.calls) == 3
    assert pauses == [1.0, 1.0]


@pytest.mark.asyncio
async def test_unreachable_farm_listing_aborts(store, settings):
    class _Unreachable(InMemoryUsageReader):
        async def list_farms(self, **kwargs):
            raise ConnectionError("database unreachable")

    with pytest.raises(DetectionRunError, match="disease_prediction"):
        await run_disease_prediction(
            client=FakeWeatherClient({}), reader=_Unreachable(), store=store, settings=settings, now=NOW
        )


def _rainy_humid_payload():
    # 1790856000 is NOW in UTC
    return {
        "list": [
            {
                "dt": 1790856000 + 3 * 3600 * i,
                "main": {"temp": 24.0, "humidity": 90},
                "weather": [{"main": "Rain"}],
            }
            for i in range(8)
        ]
    }


def _openweather_handler(request):
    latitude = request.url.params["lat"]
    if latitude == "11.0":
        return httpx.Response(200, json={"list": [{"dt": 10**20, "main": {"temp": 24.0, "humidity": 90}}]})
    if latitude == "12.0":
        return httpx.Response(200, json={"list": [{"dt": 1790856000, "weather": []}]})
    if latitude == "13.0":
        return httpx.Response(200, text="<html>maintenance</html>")
    return httpx.Response(200, json=_rainy_humid_payload())


@pytest.mark.asyncio
async def test_malformed_forecasts_only_skip_their_location(store, settings):
    bad_timestamp = make_farm(latitude=11.0, longitude=20.0)
    missing_readings = make_farm(latitude=12.0, longitude=20.0)
    not_json = make_farm(latitude=13.0, longitude=20.0)
    healthy = make_farm(latitude=10.0, longitude=20.0)
    reader = InMemoryUsageReader(farms=[bad_timestamp, missing_readings, not_json, healthy])
    client = OpenWeatherClient(
        api_key="test-key",
        base_url="https://weather.test/data/2.5",
        transport=httpx.MockTransport(_openweather_handler),
    )

    summary = await run_disease_prediction(client=client, reader=reader, store=store, settings=settings, now=NOW)

    assert summary.alerts_created == 1
    assert summary.farms_failed == 3
    assert summary.status == "partial"
    assert summary.metadata["locations_failed"] == 3
    assert summary.metadata["locations_evaluated"] == 1
    assert [farm_id for farm_id, _ in store.disease_alerts] == [healthy.farm_id]


@pytest.mark.asyncio
async def test_unexpected_client_error_only_skips_that_location(store, settings):
    class _BrokenClient(FakeWeatherClient):
        async def fetch_forecast(self, latitude, longitude):
            if latitude == -5.0:
                raise RuntimeError("unexpected provider response")
            return await super().fetch_forecast(latitude, longitude)

    broken = make_farm(latitude=-5.0, longitude=30.0)
    healthy = make_farm(latitude=10.0, longitude=20.0)
    reader = InMemoryUsageReader(farms=[broken, healthy])

    summary = await run_disease_prediction(
        client=_BrokenClient({(10.0, 20.0): RAINY_HUMID}),
        reader=reader,
        store=store,
        settings=settings,
        now=NOW,
    )

    assert summary.alerts_created == 1
    assert summary.farms_failed == 1
    assert summary.metadata["locations_failed"] == 1

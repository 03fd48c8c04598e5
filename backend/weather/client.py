"""
OpenWeather Forecast Client

Fetches the 5-day / 3-hour forecast for a coordinate pair and converts it
into ``ForecastPeriod`` samples for the disease rule engine. Any failure
for a location (timeout, non-2xx, malformed payload) surfaces as
``WeatherProviderError`` so the caller can skip that location only.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from pydantic import BaseModel, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import get_settings
from core.errors import WeatherProviderError


@dataclass(frozen=True)
class ForecastPeriod:
    """One forecast sample (OpenWeather returns one per 3 hours)."""

    timestamp: datetime
    temperature_c: float
    humidity_percent: float
    conditions: tuple[str, ...] = ()

    @property
    def is_rain(self) -> bool:
        return any("rain" in condition.lower() for condition in self.conditions)


# ── Payload validation ─────────────────────────────────────────────────────


class _MainReading(BaseModel):
    temp: float
    humidity: float


class _Condition(BaseModel):
    main: str


class _Period(BaseModel):
    dt: int
    main: _MainReading
    weather: list[_Condition] = Field(default_factory=list)


class _ForecastResponse(BaseModel):
    periods: list[_Period] = Field(alias="list")


def parse_forecast(payload) -> list[ForecastPeriod]:
    """Validate an OpenWeather forecast body and return periods in time order."""
    try:
        response = _ForecastResponse.model_validate(payload)
    except ValidationError as exc:
        raise WeatherProviderError(f"Malformed forecast payload: {exc.error_count()} validation error(s)") from exc

    periods = []
    for p in response.periods:
        try:
            timestamp = datetime.fromtimestamp(p.dt, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError) as exc:
            raise WeatherProviderError(f"Malformed forecast payload: timestamp {p.dt} out of range") from exc
        periods.append(
            ForecastPeriod(
                timestamp=timestamp,
                temperature_c=p.main.temp,
                humidity_percent=p.main.humidity,
                conditions=tuple(c.main for c in p.weather),
            )
        )
    return sorted(periods, key=lambda p: p.timestamp)


# ── Client ────────────────────────────────────────────────────────────────


class OpenWeatherClient:
    """Client for the OpenWeather forecast API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openweather_api_key
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.weather_timeout_seconds
        self._transport = transport

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _get_forecast(self, latitude: float, longitude: float) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                f"{self.base_url}/forecast",
                params={
                    "lat": latitude,
                    "lon": longitude,
                    "appid": self.api_key,
                    "units": "metric",
                },
            )
            response.raise_for_status()
            return response.json()

    async def fetch_forecast(self, latitude: float, longitude: float) -> list[ForecastPeriod]:
        try:
            payload = await self._get_forecast(latitude, longitude)
        except httpx.HTTPStatusError as exc:
            raise WeatherProviderError(
                f"Forecast request for ({latitude}, {longitude}) returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise WeatherProviderError(f"Forecast request for ({latitude}, {longitude}) failed: {exc}") from exc
        except ValueError as exc:
            raise WeatherProviderError(f"Forecast response for ({latitude}, {longitude}) is not JSON") from exc
        return parse_forecast(payload)

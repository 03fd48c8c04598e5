"""
Weather-driven disease alert job.

For every distinct farm coordinate pair, fetch the forecast, run the
disease rule engine and raise one deduplicated DiseaseAlert for each farm
located at that exact pair. A failing location is logged and skipped; the
run carries on with the next one.
"""

import asyncio
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import AlertStore
from alerts.schemas import RunSummary
from amu.usage import FarmProfile, SqlUsageDataReader, UsageDataReader
from core.config import Settings, get_settings
from core.errors import DetectionRunError, WeatherProviderError
from weather.client import OpenWeatherClient
from weather.rules import evaluate_disease_risk

logger = structlog.get_logger()

JOB_NAME = "disease_prediction"

Location = tuple[float, float]


def group_farms_by_location(farms: list[FarmProfile]) -> tuple[dict[Location, list[FarmProfile]], list[FarmProfile]]:
    """Split farms into ``{(lat, lon): farms}`` and those with unusable coordinates."""
    locations: dict[Location, list[FarmProfile]] = {}
    invalid: list[FarmProfile] = []
    for farm in farms:
        if not farm.has_valid_location:
            invalid.append(farm)
            continue
        locations.setdefault((farm.latitude, farm.longitude), []).append(farm)
    return locations, invalid


async def run_disease_prediction(
    db: AsyncSession | None = None,
    *,
    client: OpenWeatherClient | None = None,
    reader: UsageDataReader | None = None,
    store: AlertStore | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> RunSummary:
    settings = settings or get_settings()
    reader = reader or SqlUsageDataReader(db)
    store = store or AlertStore(db)
    client = client or OpenWeatherClient()
    now = now or datetime.utcnow()

    summary = RunSummary(job=JOB_NAME)
    log = logger.bind(job=JOB_NAME)
    log.info("weather.job.started", as_of=now.isoformat())

    try:
        farms = await reader.list_farms(require_location=True)
    except Exception as exc:
        log.error("weather.job.setup_failed", error=str(exc), exc_info=True)
        raise DetectionRunError(JOB_NAME, str(exc)) from exc

    locations, invalid = group_farms_by_location(farms)
    summary.farms_evaluated = len(farms)
    summary.farms_skipped = len(invalid)
    for farm in invalid:
        log.warning(
            "weather.invalid_location",
            farm_id=str(farm.farm_id),
            latitude=farm.latitude,
            longitude=farm.longitude,
        )

    evaluated = failed = 0
    for index, ((latitude, longitude), located_farms) in enumerate(locations.items()):
        if index:
            await asyncio.sleep(settings.weather_request_pause_seconds)

        try:
            periods = await client.fetch_forecast(latitude, longitude)
        except WeatherProviderError as exc:
            failed += 1
            summary.farms_failed += len(located_farms)
            log.warning("weather.location_failed", latitude=latitude, longitude=longitude, error=str(exc))
            continue
        except Exception as exc:
            failed += 1
            summary.farms_failed += len(located_farms)
            log.error(
                "weather.location_error",
                latitude=latitude,
                longitude=longitude,
                error=str(exc),
                exc_info=True,
            )
            continue

        evaluated += 1
        risk = evaluate_disease_risk(periods, now=now)
        if risk is None:
            log.debug("weather.no_risk", latitude=latitude, longitude=longitude, periods=len(periods))
            continue

        for farm in located_farms:
            try:
                created = await store.record_disease_risk(farm.farm_id, risk)
            except SQLAlchemyError as exc:
                log.error("weather.store_failed", farm_id=str(farm.farm_id), error=str(exc), exc_info=True)
                raise DetectionRunError(JOB_NAME, f"alert store unavailable: {exc}") from exc

            if created is None:
                summary.duplicates_skipped += 1
            else:
                summary.alerts_created += 1
                log.info(
                    "weather.alert_created",
                    farm_id=str(farm.farm_id),
                    disease_name=risk.disease_name,
                    risk_level=risk.risk_level.value,
                )

    summary.metadata.update(
        {
            "locations_evaluated": evaluated,
            "locations_failed": failed,
            "locations_skipped": len({(f.latitude, f.longitude) for f in invalid}),
        }
    )
    summary.complete()
    log.info("weather.job.completed", **summary.as_dict())
    return summary

"""
AMU analysis entry points — one idempotent operation per detector.

These are what the scheduler and any administrative caller invoke. Each
takes an open session, runs its detector over every farm and returns the
run summary (alerts created, farms skipped/failed).
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import AlertStore
from alerts.schemas import RunSummary
from amu.detectors import get_detector, run_detector
from amu.usage import SqlUsageDataReader
from core.config import Settings


async def run_analysis(
    db: AsyncSession,
    job_name: str,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> RunSummary:
    return await run_detector(
        get_detector(job_name),
        SqlUsageDataReader(db),
        AlertStore(db),
        settings=settings,
        now=now,
    )


async def run_historical_spike_analysis(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "historical_spike", **kwargs)


async def run_peer_comparison_analysis(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "peer_comparison", **kwargs)


async def run_absolute_threshold_analysis(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "absolute_threshold", **kwargs)


async def run_trend_analysis(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "trend_increase", **kwargs)


async def run_critical_drug_monitoring(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "critical_drug_usage", **kwargs)


async def run_sustained_high_usage_analysis(db: AsyncSession, **kwargs) -> RunSummary:
    return await run_analysis(db, "sustained_high_usage", **kwargs)

"""
AMU Analysis Workers — scheduled detector runs and disease prediction.

One Celery task per recurring job:
  1. Daily: historical spike, absolute threshold, critical drug usage,
     sustained high usage, weather disease prediction
  2. Monthly: peer comparison, trend increase

Every task opens its own engine, runs the job against a fresh session and
returns the run summary. Run-level failures are logged and retried.

Schedule: See workers/jobs.py
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def _run_job(job_name: str) -> dict:
    from core.config import get_settings

    settings = get_settings()
    engine = create_async_engine(settings.database_url)
    try:
        # Alerts commit one by one; keep loaded rows usable across commits.
        async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with async_session() as db:
            if job_name == "disease_prediction":
                from weather.job import run_disease_prediction as run

                summary = await run(db, settings=settings)
            else:
                from amu.analysis import run_analysis

                summary = await run_analysis(db, job_name, settings=settings)
            return summary.as_dict()
    finally:
        await engine.dispose()


def _execute(task, job_name: str) -> dict:
    run_id = task.request.id or "manual"
    logger.info("amu.job.started", job=job_name, run_id=run_id)
    try:
        result = asyncio.run(_run_job(job_name))
    except Exception as exc:  # noqa: BLE001
        logger.error("amu.job.failed", job=job_name, run_id=run_id, error=str(exc), exc_info=True)
        raise task.retry(exc=exc)

    logger.info("amu.job.completed", run_id=run_id, **result)
    return result


@celery_app.task(
    name="workers.amu_analysis.run_historical_spike_analysis",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_historical_spike_analysis(self):
    """Daily: current week vs the farm's own 6-month weekly average."""
    return _execute(self, "historical_spike")


@celery_app.task(
    name="workers.amu_analysis.run_peer_comparison_analysis",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_peer_comparison_analysis(self):
    """Monthly: last month vs the farm's species / herd size peer group."""
    return _execute(self, "peer_comparison")


@celery_app.task(
    name="workers.amu_analysis.run_absolute_threshold_analysis",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_absolute_threshold_analysis(self):
    return _execute(self, "absolute_threshold")


@celery_app.task(
    name="workers.amu_analysis.run_trend_analysis",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_trend_analysis(self):
    return _execute(self, "trend_increase")


@celery_app.task(
    name="workers.amu_analysis.run_critical_drug_monitoring",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_critical_drug_monitoring(self):
    return _execute(self, "critical_drug_usage")


@celery_app.task(
    name="workers.amu_analysis.run_sustained_high_usage_analysis",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_sustained_high_usage_analysis(self):
    return _execute(self, "sustained_high_usage")


@celery_app.task(
    name="workers.amu_analysis.run_disease_prediction",
    bind=True,
    max_retries=2,
    default_retry_delay=600,
    acks_late=True,
)
def run_disease_prediction(self):
    """Daily: weather forecast → disease risk alerts for every farm location."""
    return _execute(self, "disease_prediction")

"""
Recurring job registry.

Single source of truth for what runs when: the Celery beat schedule and
the job listing are both generated from ``RECURRING_JOBS``. Kept free of
the Celery app so it can be imported while the app is being configured.
"""

from dataclasses import dataclass

from celery.schedules import crontab

DAILY = "daily"
MONTHLY = "monthly"


@dataclass(frozen=True)
class RecurringJob:
    name: str
    task_name: str
    cadence: str
    hour: int
    minute: int = 0
    description: str = ""
    queue: str = "analysis"

    @property
    def cron(self) -> str:
        """Five-field cron descriptor (minute hour day-of-month month day-of-week)."""
        day_of_month = "1" if self.cadence == MONTHLY else "*"
        return f"{self.minute} {self.hour} {day_of_month} * *"

    def schedule(self) -> crontab:
        if self.cadence == MONTHLY:
            return crontab(minute=self.minute, hour=self.hour, day_of_month=1)
        return crontab(minute=self.minute, hour=self.hour)


RECURRING_JOBS: list[RecurringJob] = [
    # ── Weather ────────────────────────────────────────────────────────
    RecurringJob(
        name="disease_prediction",
        task_name="workers.amu_analysis.run_disease_prediction",
        cadence=DAILY,
        hour=1,
        description="Forecast-driven livestock disease risk per farm location",
        queue="weather",
    ),
    # ── Daily AMU detectors ────────────────────────────────────────────
    RecurringJob(
        name="historical_spike",
        task_name="workers.amu_analysis.run_historical_spike_analysis",
        cadence=DAILY,
        hour=2,
        description="Last 7 days vs the farm's 6-month weekly average",
    ),
    RecurringJob(
        name="absolute_threshold",
        task_name="workers.amu_analysis.run_absolute_threshold_analysis",
        cadence=DAILY,
        hour=2,
        minute=15,
        description="Treatments per animal over the last month vs policy limit",
    ),
    RecurringJob(
        name="critical_drug_usage",
        task_name="workers.amu_analysis.run_critical_drug_monitoring",
        cadence=DAILY,
        hour=2,
        minute=30,
        description="Share of Watch/Reserve antimicrobials over the last month",
    ),
    RecurringJob(
        name="sustained_high_usage",
        task_name="workers.amu_analysis.run_sustained_high_usage_analysis",
        cadence=DAILY,
        hour=2,
        minute=45,
        description="Consecutive weeks above the farm's own baseline",
    ),
    # ── Monthly AMU detectors ──────────────────────────────────────────
    RecurringJob(
        name="peer_comparison",
        task_name="workers.amu_analysis.run_peer_comparison_analysis",
        cadence=MONTHLY,
        hour=3,
        description="Last month vs farms of the same species and herd size tier",
    ),
    RecurringJob(
        name="trend_increase",
        task_name="workers.amu_analysis.run_trend_analysis",
        cadence=MONTHLY,
        hour=3,
        minute=30,
        description="Three consecutive months of rising usage",
    ),
]

JOBS_BY_NAME: dict[str, RecurringJob] = {job.name: job for job in RECURRING_JOBS}


def get_job(name: str) -> RecurringJob:
    try:
        return JOBS_BY_NAME[name]
    except KeyError:
        raise ValueError(f"Unknown job '{name}'. Available: {sorted(JOBS_BY_NAME)}") from None


def build_beat_schedule() -> dict[str, dict]:
    return {
        f"{job.name.replace('_', '-')}-{job.cadence}": {
            "task": job.task_name,
            "schedule": job.schedule(),
            "options": {"queue": job.queue},
        }
        for job in RECURRING_JOBS
    }


def describe_jobs() -> list[dict]:
    """Status listing of every recurring job: cadence, cron and Celery task."""
    return [
        {
            "name": job.name,
            "task_name": job.task_name,
            "cadence": job.cadence,
            "cron": job.cron,
            "queue": job.queue,
            "description": job.description,
        }
        for job in RECURRING_JOBS
    ]

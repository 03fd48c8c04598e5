"""
Celery Application Configuration
"""

from celery import Celery

from core.config import get_settings
from workers.jobs import build_beat_schedule

settings = get_settings()

celery_app = Celery(
    "amu_sentinel",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.amu_analysis", "workers.scheduler"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.amu_analysis.run_disease_prediction": {"queue": "weather"},
        "workers.amu_analysis.*": {"queue": "analysis"},
        "workers.scheduler.*": {"queue": "analysis"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Daily: disease prediction 01:00, then spike/absolute/critical/sustained from 02:00.
    # Monthly (1st): peer comparison and trend.
    beat_schedule=build_beat_schedule(),
)

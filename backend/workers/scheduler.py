"""On-demand dispatch helpers for the recurring AMU jobs."""

from datetime import datetime, timezone

import structlog

import workers.amu_analysis  # noqa: F401  registers the job tasks
from workers.celery_app import celery_app
from workers.jobs import RECURRING_JOBS, describe_jobs, get_job

logger = structlog.get_logger()

__all__ = ["describe_jobs", "dispatch_jobs", "trigger_job"]


def trigger_job(name: str, eager: bool = False) -> dict:
    """
    Run one recurring job now.

    ``eager=True`` executes the task in-process and returns its run summary;
    otherwise the task is queued and the Celery task id is returned.
    """
    job = get_job(name)
    if eager:
        task = celery_app.tasks[job.task_name]
        return task.run()

    result = celery_app.send_task(job.task_name, queue=job.queue)
    logger.info("scheduler.job_triggered", job=job.name, task_name=job.task_name, task_id=getattr(result, "id", None))
    return {
        "status": "queued",
        "job": job.name,
        "task_name": job.task_name,
        "task_id": getattr(result, "id", None),
    }


@celery_app.task(
    name="workers.scheduler.dispatch_jobs",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def dispatch_jobs(self, cadence: str | None = None):
    """
    Queue every recurring job, or only those of one cadence ("daily" / "monthly").
    """
    run_id = self.request.id or "manual"
    selected = [job for job in RECURRING_JOBS if cadence is None or job.cadence == cadence]
    if not selected:
        return {"status": "failed", "reason": "unknown_cadence", "cadence": cadence}

    try:
        for job in selected:
            celery_app.send_task(job.task_name, queue=job.queue)
    except Exception as exc:  # noqa: BLE001
        logger.error("scheduler.dispatch_failed", cadence=cadence, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    summary = {
        "status": "success",
        "cadence": cadence or "all",
        "dispatched_count": len(selected),
        "jobs": [job.name for job in selected],
        "triggered_at": datetime.now(timezone.utc).isoformat(),
        "run_id": run_id,
    }
    logger.info("scheduler.dispatch_complete", **summary)
    return summary

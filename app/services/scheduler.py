import logging

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.observability import log_event
from app.services.runtime import Runtime

logger = logging.getLogger("botcrm.jobs")

JOB_POST_QUEUE = "post_queue_drain"
JOB_SALES_RULE_QUEUE = "sales_rule_queue_drain"
JOB_ATTENTION_SCAN = "attention_scan"


def _on_scheduler_event(event) -> None:
    job_id = getattr(event, "job_id", "?")
    if event.code == EVENT_JOB_MISSED:
        log_event(logger, "scheduler_job_missed", level=logging.WARNING, job_id=job_id)
    elif event.code == EVENT_JOB_MAX_INSTANCES:
        log_event(logger, "scheduler_job_busy", level=logging.WARNING, job_id=job_id)
    elif event.code == EVENT_JOB_ERROR:
        log_event(logger, "scheduler_job_error", level=logging.ERROR, job_id=job_id, error=str(event.exception))


def build_scheduler(runtime: Runtime) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone, daemon=True)
    scheduler.add_listener(_on_scheduler_event, EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_ERROR)

    scheduler.add_job(
        runtime.post_worker.run_once,
        trigger=IntervalTrigger(seconds=settings.post_queue_interval_seconds),
        id=JOB_POST_QUEUE,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.add_job(
        runtime.sales_rule_worker.run_once,
        trigger=IntervalTrigger(seconds=settings.sales_rule_queue_interval_seconds),
        id=JOB_SALES_RULE_QUEUE,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.add_job(
        runtime.engagement.run_scan,
        trigger=CronTrigger(
            hour=settings.attention_check_hour,
            minute=settings.attention_check_minute,
            timezone=settings.scheduler_timezone,
        ),
        id=JOB_ATTENTION_SCAN,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )
    return scheduler


def start_scheduler(runtime: Runtime) -> BackgroundScheduler:
    scheduler = build_scheduler(runtime)
    scheduler.start()
    log_event(
        logger,
        "scheduler_started",
        jobs=[job.id for job in scheduler.get_jobs()],
        timezone=settings.scheduler_timezone,
    )
    return scheduler


def stop_scheduler(scheduler: BackgroundScheduler | None) -> None:
    if scheduler is None or not scheduler.running:
        return
    scheduler.shutdown(wait=True)
    log_event(logger, "scheduler_stopped")


def _job_status(job) -> dict[str, object]:
    # Jobs added before start() have no next_run_time yet.
    next_run = getattr(job, "next_run_time", None)
    return {"id": job.id, "next_run_time": next_run.isoformat() if next_run else None}


def scheduler_status(scheduler: BackgroundScheduler | None) -> dict[str, object]:
    if scheduler is None:
        return {"running": False, "jobs": []}
    return {
        "running": bool(scheduler.running),
        "jobs": [_job_status(job) for job in scheduler.get_jobs()],
    }

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.schemas.dispatch import DrainSummaryOut, LastScanOut, QueueStatsOut, ScanSummaryOut
from app.services.dispatch_queue import post_queue, sales_rule_queue
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_admin_key)])


@router.get(
    "/queue-stats",
    response_model=QueueStatsOut,
    summary="Sales rule queue statistics",
    responses=error_responses(403, 500, path="/cron"),
)
def sales_rule_queue_stats(db: Session = Depends(get_db)):
    stats = sales_rule_queue(db).stats()
    return QueueStatsOut(queue="sales_rule_queue", **asdict(stats))


@router.get(
    "/post-queue-stats",
    response_model=QueueStatsOut,
    summary="Post queue statistics",
    responses=error_responses(403, 500, path="/cron"),
)
def post_queue_stats(db: Session = Depends(get_db)):
    stats = post_queue(db).stats()
    return QueueStatsOut(queue="post_queue", **asdict(stats))


@router.post(
    "/run-queue-process",
    response_model=DrainSummaryOut,
    summary="Drain the sales rule queue now",
    responses=error_responses(403, 500, path="/cron"),
)
def run_sales_rule_queue(runtime: Runtime = Depends(get_runtime)):
    return DrainSummaryOut(**asdict(runtime.sales_rule_worker.run_once()))


@router.post(
    "/run-post-queue-process",
    response_model=DrainSummaryOut,
    summary="Drain the post queue now",
    responses=error_responses(403, 500, path="/cron"),
)
def run_post_queue(runtime: Runtime = Depends(get_runtime)):
    return DrainSummaryOut(**asdict(runtime.post_worker.run_once()))


@router.post(
    "/run-attention-check",
    response_model=ScanSummaryOut,
    summary="Run the attention scan now",
    responses=error_responses(403, 500, path="/cron"),
)
def run_attention_check(runtime: Runtime = Depends(get_runtime)):
    return ScanSummaryOut(**asdict(runtime.engagement.run_scan()))


@router.get(
    "/last-attention-check",
    response_model=LastScanOut,
    summary="Time and result of the last attention scan",
    responses=error_responses(403, 500, path="/cron"),
)
def last_attention_check(runtime: Runtime = Depends(get_runtime)):
    summary = runtime.engagement.last_scan_summary
    return LastScanOut(
        last_scan_at=runtime.engagement.last_scan_time(),
        is_running=runtime.engagement.is_running,
        last_summary=ScanSummaryOut(**asdict(summary)) if summary else None,
    )

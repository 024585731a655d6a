import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.observability import log_event
from app.models.user import User

logger = logging.getLogger("botcrm.jobs")


def _cutoff(stale_days: int | None, now: datetime | None) -> datetime:
    if stale_days is None:
        stale_days = settings.attention_stale_days
    return (now or datetime.now(timezone.utc)) - timedelta(days=stale_days)


def scan_and_flag(db: Session, *, stale_days: int | None = None, now: datetime | None = None) -> int:
    """Flag users whose last contact is older than the window.

    Assigning ``updated_at`` to itself keeps the column's onupdate from firing,
    so the scan never counts as contact.
    """
    cutoff = _cutoff(stale_days, now)
    stmt = (
        update(User)
        .where(User.updated_at < cutoff, User.attention_needed.is_(False))
        .values(attention_needed=True, updated_at=User.updated_at)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount or 0


def scan_and_unflag(db: Session, *, stale_days: int | None = None, now: datetime | None = None) -> int:
    cutoff = _cutoff(stale_days, now)
    stmt = (
        update(User)
        .where(User.updated_at >= cutoff, User.attention_needed.is_(True))
        .values(attention_needed=False, updated_at=User.updated_at)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount or 0


def reset_by_chat_ids(db: Session, chat_ids) -> int:
    """Clear the flag after a successful contact; ``updated_at`` advances."""
    keys = sorted({str(chat_id) for chat_id in chat_ids or [] if chat_id is not None})
    if not keys:
        return 0
    stmt = (
        update(User)
        .where(User.chat_id.in_(keys))
        .values(attention_needed=False)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount or 0


def reset_after_contact(db: Session, chat_ids) -> int:
    """Run the reset in its own transaction.

    Callers commit their delivery bookkeeping first; a failed reset is logged
    and rolled back on its own.
    """
    try:
        reset = reset_by_chat_ids(db, chat_ids)
        db.commit()
    except Exception as exc:
        db.rollback()
        log_event(logger, "attention_reset_failed", level=logging.WARNING, recipients=len(chat_ids), error=str(exc))
        return 0
    return reset


@dataclass(frozen=True)
class ScanSummary:
    skipped: bool
    flagged: int
    unflagged: int
    started_at: datetime
    finished_at: datetime
    error: str | None = None


class EngagementTracker:
    """Runs the periodic attention scan, one run at a time."""

    def __init__(self, session_factory: Callable[[], Session], *, stale_days: int | None = None):
        self._session_factory = session_factory
        self._stale_days = settings.attention_stale_days if stale_days is None else stale_days
        self._lock = threading.Lock()
        self.last_scan_at: datetime | None = None
        self.last_scan_summary: ScanSummary | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def last_scan_time(self) -> datetime | None:
        return self.last_scan_at

    def run_scan(self, *, now: datetime | None = None) -> ScanSummary:
        started_at = datetime.now(timezone.utc)
        if not self._lock.acquire(blocking=False):
            log_event(logger, "attention_scan_skipped", reason="already_running")
            return ScanSummary(skipped=True, flagged=0, unflagged=0, started_at=started_at, finished_at=started_at)

        try:
            summary = self._scan(started_at, now)
            self.last_scan_at = summary.finished_at
            self.last_scan_summary = summary
            return summary
        finally:
            self._lock.release()

    def _scan(self, started_at: datetime, now: datetime | None) -> ScanSummary:
        db = self._session_factory()
        try:
            flagged = scan_and_flag(db, stale_days=self._stale_days, now=now)
            unflagged = scan_and_unflag(db, stale_days=self._stale_days, now=now)
            db.commit()
        except Exception as exc:
            db.rollback()
            log_event(logger, "attention_scan_failed", level=logging.ERROR, error=str(exc))
            return ScanSummary(
                skipped=False,
                flagged=0,
                unflagged=0,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                error=str(exc),
            )
        finally:
            db.close()

        summary = ScanSummary(
            skipped=False,
            flagged=flagged,
            unflagged=unflagged,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        log_event(logger, "attention_scan_completed", **asdict(summary))
        return summary

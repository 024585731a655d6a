from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from app.models.user import User
from app.services import engagement_service
from app.services.engagement_service import EngagementTracker


def _seed(db, chat_id, *, days_old=0, attention=False):
    user = User(chat_id=chat_id, attention_needed=attention)
    db.add(user)
    db.commit()
    if days_old:
        db.execute(
            update(User)
            .where(User.id == user.id)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(days=days_old), attention_needed=attention)
        )
        db.commit()
    return user.id


def _naive(value):
    return value.replace(tzinfo=None) if value is not None else None


def _row(db, user_id):
    return db.execute(select(User).where(User.id == user_id).execution_options(populate_existing=True)).scalar_one()


def test_scan_flags_stale_users_without_touching_updated_at(session_local):
    with session_local() as db:
        stale_id = _seed(db, "111", days_old=15)
        fresh_id = _seed(db, "222", days_old=2)
        before = _naive(_row(db, stale_id).updated_at)

        flagged = engagement_service.scan_and_flag(db, stale_days=14)
        db.commit()

        stale = _row(db, stale_id)
        assert flagged == 1
        assert stale.attention_needed is True
        assert _naive(stale.updated_at) == before
        assert _row(db, fresh_id).attention_needed is False


def test_scan_is_idempotent(session_local):
    with session_local() as db:
        _seed(db, "111", days_old=20)

        assert engagement_service.scan_and_flag(db, stale_days=14) == 1
        db.commit()
        assert engagement_service.scan_and_flag(db, stale_days=14) == 0


def test_unflag_clears_recently_contacted_users(session_local):
    with session_local() as db:
        recent_id = _seed(db, "111", days_old=1, attention=True)
        stale_id = _seed(db, "222", days_old=30, attention=True)
        before = _naive(_row(db, recent_id).updated_at)

        unflagged = engagement_service.scan_and_unflag(db, stale_days=14)
        db.commit()

        recent = _row(db, recent_id)
        assert unflagged == 1
        assert recent.attention_needed is False
        assert _naive(recent.updated_at) == before
        assert _row(db, stale_id).attention_needed is True


def test_reset_clears_flag_and_advances_updated_at(session_local):
    with session_local() as db:
        user_id = _seed(db, "111", days_old=30, attention=True)
        before = _naive(_row(db, user_id).updated_at)

        assert engagement_service.reset_by_chat_ids(db, ["111", 111]) == 1
        db.commit()

        user = _row(db, user_id)
        assert user.attention_needed is False
        assert _naive(user.updated_at) > before


def test_reset_with_no_known_chat_ids_is_noop(session_local):
    with session_local() as db:
        user_id = _seed(db, "111", days_old=30, attention=True)

        assert engagement_service.reset_by_chat_ids(db, []) == 0
        assert engagement_service.reset_by_chat_ids(db, None) == 0
        assert engagement_service.reset_by_chat_ids(db, ["999"]) == 0
        db.commit()

        assert _row(db, user_id).attention_needed is True


def test_tracker_records_last_scan(session_local):
    with session_local() as db:
        _seed(db, "111", days_old=20)
        _seed(db, "222", days_old=3, attention=True)

    tracker = EngagementTracker(session_local, stale_days=14)
    assert tracker.last_scan_time() is None

    summary = tracker.run_scan()

    assert summary.skipped is False
    assert summary.error is None
    assert (summary.flagged, summary.unflagged) == (1, 1)
    assert tracker.last_scan_time() == summary.finished_at
    assert tracker.last_scan_summary == summary


def test_tracker_uses_injected_now(session_local):
    with session_local() as db:
        user_id = _seed(db, "111", days_old=3)

    tracker = EngagementTracker(session_local, stale_days=14)
    summary = tracker.run_scan(now=datetime.now(timezone.utc) + timedelta(days=30))

    assert summary.flagged == 1
    with session_local() as db:
        assert _row(db, user_id).attention_needed is True


def test_tracker_skips_overlapping_run(session_local):
    tracker = EngagementTracker(session_local, stale_days=14)
    tracker._lock.acquire()
    try:
        summary = tracker.run_scan()
    finally:
        tracker._lock.release()

    assert summary.skipped is True
    assert tracker.last_scan_time() is None


def test_tracker_reports_scan_failure(session_local):
    def _raise(*args, **kwargs):
        raise RuntimeError("database is down")

    def broken_session():
        session = session_local()
        session.execute = _raise
        return session

    tracker = EngagementTracker(broken_session, stale_days=14)
    summary = tracker.run_scan()

    assert summary.error == "database is down"
    assert tracker.is_running is False


def test_zero_day_window_is_not_replaced_by_default(session_local):
    with session_local() as db:
        user_id = _seed(db, "111", days_old=1)

        assert engagement_service.scan_and_flag(db, stale_days=0) == 1
        db.commit()
        assert _row(db, user_id).attention_needed is True

    assert EngagementTracker(session_local, stale_days=0)._stale_days == 0

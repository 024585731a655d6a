from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.errors import NotFoundError
from app.models.post import Post
from app.models.queue import PostQueueItem, SalesRuleQueueItem
from app.models.sales_rule import SalesRule
from app.models.user import User
from app.services.dispatch_queue import (
    enqueue_post_for_all_active_users,
    enqueue_post_for_attention_needed,
    enqueue_post_for_chat_ids,
    enqueue_sales_rule,
    post_queue,
)


def _seed_users(db, *chat_ids, blocked=(), attention=()):
    users = {}
    for chat_id in chat_ids:
        user = User(
            chat_id=chat_id,
            is_blocked=chat_id in blocked,
            attention_needed=chat_id in attention,
        )
        db.add(user)
        users[chat_id] = user
    db.commit()
    return users


def _seed_post(db, post_id="post-5"):
    post = Post(id=post_id, description="Spring collection")
    db.add(post)
    db.commit()
    return post


def _queued_count(db, post_id):
    return db.execute(
        select(func.count(PostQueueItem.id)).where(PostQueueItem.post_id == post_id)
    ).scalar_one()


def test_enqueue_twice_keeps_single_item(session_local):
    with session_local() as db:
        _seed_users(db, "111")
        _seed_post(db)

        first = post_queue(db).enqueue("post-5", ["111"])
        db.commit()
        second = post_queue(db).enqueue("post-5", ["111"])
        db.commit()

        assert (first.added_count, first.skipped_count) == (1, 0)
        assert (second.added_count, second.skipped_count) == (0, 1)
        assert second.errors == []
        assert _queued_count(db, "post-5") == 1


def test_enqueue_skips_unknown_and_repeated_chat_ids(session_local):
    with session_local() as db:
        _seed_users(db, "111", "222")
        _seed_post(db)

        result = post_queue(db).enqueue("post-5", ["111", "999", "111", 222])
        db.commit()

        assert result.added_count == 2
        assert result.skipped_count == 2
        assert _queued_count(db, "post-5") == 2


def test_drain_batch_is_oldest_first_and_bounded(session_local):
    with session_local() as db:
        users = _seed_users(db, "1", "2", "3")
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for offset, chat_id in enumerate(["3", "1", "2"]):
            db.add(PostQueueItem(user_id=users[chat_id].id, post_id="p", created_at=base + timedelta(minutes=offset)))
        db.commit()

        items = post_queue(db).drain_batch(2)

        assert [item.user_id for item in items] == [users["3"].id, users["1"].id]
        # Reading does not consume.
        assert _queued_count(db, "p") == 3
        assert post_queue(db).drain_batch(0) == []
        assert len(post_queue(db).drain_batch()) == 3


def test_remove_processed_is_idempotent(session_local):
    with session_local() as db:
        users = _seed_users(db, "111", "222")
        _seed_post(db)
        queue = post_queue(db)
        queue.enqueue("post-5", ["111", "222"])
        db.commit()

        assert queue.remove_processed("post-5", [users["111"].id]) == 1
        assert queue.remove_processed("post-5", [users["111"].id]) == 0
        assert queue.remove_processed("post-5", []) == 0
        db.commit()
        assert _queued_count(db, "post-5") == 1


def test_stats_report_count_and_age_range(session_local):
    with session_local() as db:
        users = _seed_users(db, "1", "2")
        oldest = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
        newest = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
        db.add(PostQueueItem(user_id=users["1"].id, post_id="a", created_at=oldest))
        db.add(PostQueueItem(user_id=users["2"].id, post_id="b", created_at=newest))
        db.commit()

        stats = post_queue(db).stats()

        assert stats.total_items == 2
        assert stats.oldest_item_at.replace(tzinfo=None) == oldest.replace(tzinfo=None)
        assert stats.newest_item_at.replace(tzinfo=None) == newest.replace(tzinfo=None)


def test_stats_on_empty_queue(session_local):
    with session_local() as db:
        stats = post_queue(db).stats()
        assert stats.total_items == 0
        assert stats.oldest_item_at is None
        assert stats.newest_item_at is None


def test_enqueue_for_all_active_users_skips_blocked(session_local):
    with session_local() as db:
        users = _seed_users(db, "1", "2", "3", blocked={"2"})
        _seed_post(db)

        result = enqueue_post_for_all_active_users(db, post_id="post-5")
        db.commit()

        assert result.added_count == 2
        queued = set(db.execute(select(PostQueueItem.user_id)).scalars().all())
        assert queued == {users["1"].id, users["3"].id}


def test_enqueue_for_attention_needed_only_targets_flagged_users(session_local):
    with session_local() as db:
        users = _seed_users(db, "1", "2", "3", blocked={"3"}, attention={"2", "3"})
        _seed_post(db)

        result = enqueue_post_for_attention_needed(db, post_id="post-5")
        db.commit()

        assert result.added_count == 1
        queued = db.execute(select(PostQueueItem.user_id)).scalars().all()
        assert queued == [users["2"].id]


def test_enqueue_for_missing_post_raises(session_local):
    with session_local() as db:
        _seed_users(db, "1")
        with pytest.raises(NotFoundError):
            enqueue_post_for_chat_ids(db, post_id="missing", chat_ids=["1"])


def test_enqueue_sales_rule_requires_existing_rule(session_local):
    with session_local() as db:
        _seed_users(db, "111")
        with pytest.raises(NotFoundError):
            enqueue_sales_rule(db, sales_rule_id="nope", chat_ids=["111"])

        db.add(SalesRule(id="42", name="Spring sale", max_uses=1))
        db.commit()
        result = enqueue_sales_rule(db, sales_rule_id="42", chat_ids=["111"])
        db.commit()

        assert result.added_count == 1
        assert db.execute(select(func.count(SalesRuleQueueItem.id))).scalar_one() == 1

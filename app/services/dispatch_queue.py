import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import NotFoundError
from app.core.observability import log_event
from app.models.queue import PostQueueItem, SalesRuleQueueItem
from app.services import content_store, recipient_store

logger = logging.getLogger("botcrm.jobs")


@dataclass(frozen=True)
class QueueKind:
    name: str
    model: Any
    content_column: str
    batch_size: int

    @property
    def content_attr(self):
        return getattr(self.model, self.content_column)


POST_QUEUE = QueueKind(
    name="post_queue",
    model=PostQueueItem,
    content_column="post_id",
    batch_size=settings.post_queue_batch_size,
)
SALES_RULE_QUEUE = QueueKind(
    name="sales_rule_queue",
    model=SalesRuleQueueItem,
    content_column="sales_rule_id",
    batch_size=settings.sales_rule_queue_batch_size,
)


@dataclass
class EnqueueResult:
    added_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class QueueStats:
    total_items: int
    oldest_item_at: datetime | None
    newest_item_at: datetime | None


class DispatchQueue:
    """Durable (recipient, content) work queue.

    Rows are only inserted and deleted. A pair has at most one pending row;
    the unique constraint backs the application-level check.
    """

    def __init__(self, db: Session, kind: QueueKind):
        self.db = db
        self.kind = kind

    def content_id_of(self, item) -> str:
        return getattr(item, self.kind.content_column)

    def _pending_user_ids(self, content_id: str, user_ids: list[str]) -> set[str]:
        if not user_ids:
            return set()
        model = self.kind.model
        stmt = select(model.user_id).where(self.kind.content_attr == content_id, model.user_id.in_(user_ids))
        return set(self.db.execute(stmt).scalars().all())

    def enqueue(self, content_id: str, chat_ids) -> EnqueueResult:
        result = EnqueueResult()
        normalized = [str(chat_id).strip() for chat_id in chat_ids if chat_id is not None]
        users = recipient_store.users_by_chat_ids(self.db, normalized)
        pending = self._pending_user_ids(content_id, [user.id for user in users.values()])
        seen: set[str] = set()

        for chat_id in normalized:
            user = users.get(chat_id)
            if user is None:
                result.skipped_count += 1
                continue
            if user.id in pending or user.id in seen:
                result.skipped_count += 1
                continue
            seen.add(user.id)

            try:
                with self.db.begin_nested():
                    self.db.add(
                        self.kind.model(
                            user_id=user.id,
                            created_at=datetime.now(timezone.utc),
                            **{self.kind.content_column: content_id},
                        )
                    )
                    self.db.flush()
            except SQLAlchemyError as exc:
                result.errors.append(f"{chat_id}: {exc.__class__.__name__}")
                continue
            result.added_count += 1

        log_event(
            logger,
            "queue_enqueued",
            queue=self.kind.name,
            content_id=content_id,
            added_count=result.added_count,
            skipped_count=result.skipped_count,
            error_count=len(result.errors),
        )
        return result

    def drain_batch(self, max_items: int | None = None) -> list:
        model = self.kind.model
        limit = self.kind.batch_size if max_items is None else max_items
        stmt = select(model).order_by(model.created_at.asc(), model.id.asc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def remove_processed(self, content_id: str, user_ids) -> int:
        ids = [user_id for user_id in dict.fromkeys(user_ids) if user_id]
        if not ids:
            return 0
        model = self.kind.model
        stmt = delete(model).where(self.kind.content_attr == content_id, model.user_id.in_(ids))
        return self.db.execute(stmt).rowcount or 0

    def remove_content(self, content_id: str) -> int:
        stmt = delete(self.kind.model).where(self.kind.content_attr == content_id)
        return self.db.execute(stmt).rowcount or 0

    def stats(self) -> QueueStats:
        model = self.kind.model
        total, oldest, newest = self.db.execute(
            select(func.count(model.id), func.min(model.created_at), func.max(model.created_at))
        ).one()
        return QueueStats(total_items=int(total or 0), oldest_item_at=oldest, newest_item_at=newest)


def post_queue(db: Session) -> DispatchQueue:
    return DispatchQueue(db, POST_QUEUE)


def sales_rule_queue(db: Session) -> DispatchQueue:
    return DispatchQueue(db, SALES_RULE_QUEUE)


def _post_or_404(db: Session, post_id: str):
    post = content_store.get_post(db, post_id)
    if not post:
        raise NotFoundError("Post not found")
    return post


def enqueue_post_for_chat_ids(db: Session, *, post_id: str, chat_ids) -> EnqueueResult:
    _post_or_404(db, post_id)
    return post_queue(db).enqueue(post_id, chat_ids)


def enqueue_post_for_all_active_users(db: Session, *, post_id: str) -> EnqueueResult:
    _post_or_404(db, post_id)
    return post_queue(db).enqueue(post_id, recipient_store.active_chat_ids(db))


def enqueue_post_for_attention_needed(db: Session, *, post_id: str) -> EnqueueResult:
    _post_or_404(db, post_id)
    return post_queue(db).enqueue(post_id, recipient_store.attention_needed_chat_ids(db))


def enqueue_sales_rule(db: Session, *, sales_rule_id: str, chat_ids) -> EnqueueResult:
    if not content_store.get_sales_rule(db, sales_rule_id):
        raise NotFoundError("Sales rule not found")
    return sales_rule_queue(db).enqueue(sales_rule_id, chat_ids)

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.services import content_store, coupon_service, engagement_service, recipient_store
from app.services.dispatch_queue import POST_QUEUE, SALES_RULE_QUEUE, DispatchQueue, QueueKind
from app.services.send_capability import SendCapability, SendResult

logger = logging.getLogger("botcrm.jobs")


class ContentSender(Protocol):
    def load(self, db: Session, content_id: str) -> Any | None:
        ...

    def send(self, db: Session, content: Any, chat_id: str) -> SendResult:
        ...


class PostSender:
    def __init__(self, capability: SendCapability):
        self.capability = capability

    def load(self, db: Session, content_id: str):
        return content_store.get_post(db, content_id)

    def send(self, db: Session, content, chat_id: str) -> SendResult:
        return self.capability.send_content(chat_id, content_store.post_content(content))


class CouponSender:
    """Mints a coupon for the recipient, then delivers it."""

    def __init__(self, capability: SendCapability):
        self.capability = capability

    def load(self, db: Session, content_id: str):
        return content_store.get_sales_rule(db, content_id)

    def send(self, db: Session, content, chat_id: str) -> SendResult:
        issued = coupon_service.issue_coupon(db, sales_rule=content, chat_id=chat_id, sender=self.capability)
        return issued.delivery or SendResult(success=False, error="not delivered")


@dataclass
class DrainSummary:
    queue: str
    skipped: bool = False
    processed: int = 0
    sent: int = 0
    failed: int = 0
    unresolved: int = 0
    orphaned: int = 0
    groups: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None


def _group_by_content(queue: DispatchQueue, items: list) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {}
    for item in items:
        groups.setdefault(queue.content_id_of(item), []).append(item.user_id)
    return groups


class QueueDrainWorker:
    """Drains one dispatch queue in bounded batches.

    At most one cycle runs per worker; a trigger that arrives while a cycle is
    in flight returns a skipped summary. Every attempted (content, recipient)
    pair is removed and committed right after its send, so a failed send is not
    retried and a later failure cannot resend it.
    """

    def __init__(
        self,
        *,
        kind: QueueKind,
        sender: ContentSender,
        session_factory: Callable[[], Session],
        batch_size: int | None = None,
    ):
        self.kind = kind
        self.sender = sender
        self.batch_size = kind.batch_size if batch_size is None else batch_size
        self._session_factory = session_factory
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> DrainSummary:
        now = datetime.now(timezone.utc)
        if not self._lock.acquire(blocking=False):
            log_event(logger, "queue_drain_skipped", queue=self.kind.name, reason="already_running")
            return DrainSummary(queue=self.kind.name, skipped=True, started_at=now, finished_at=now)

        summary = DrainSummary(queue=self.kind.name, started_at=now)
        try:
            self._drain(summary)
        except Exception as exc:
            summary.errors.append(str(exc))
            log_event(logger, "queue_drain_failed", level=logging.ERROR, queue=self.kind.name, error=str(exc))
        finally:
            summary.finished_at = datetime.now(timezone.utc)
            self._lock.release()

        log_event(logger, "queue_drain_completed", **asdict(summary))
        return summary

    def _drain(self, summary: DrainSummary) -> None:
        db = self._session_factory()
        try:
            queue = DispatchQueue(db, self.kind)
            items = queue.drain_batch(self.batch_size)
            if not items:
                return
            groups = _group_by_content(queue, items)

            for content_id, group in groups.items():
                try:
                    self._process_group(db, queue, content_id, group, summary)
                except Exception as exc:
                    db.rollback()
                    summary.errors.append(f"{content_id}: {exc}")
                    log_event(
                        logger,
                        "queue_group_failed",
                        level=logging.ERROR,
                        queue=self.kind.name,
                        content_id=content_id,
                        error=str(exc),
                    )
        finally:
            db.close()

    def _process_group(
        self,
        db: Session,
        queue: DispatchQueue,
        content_id: str,
        user_ids: list[str],
        summary: DrainSummary,
    ) -> None:
        content = self.sender.load(db, content_id)
        if content is None:
            removed = queue.remove_processed(content_id, user_ids)
            db.commit()
            summary.orphaned += removed
            log_event(
                logger,
                "queue_content_missing",
                level=logging.WARNING,
                queue=self.kind.name,
                content_id=content_id,
                removed=removed,
            )
            return

        summary.groups += 1
        chat_ids = recipient_store.chat_ids_by_user_ids(db, user_ids)
        reached: list[str] = []

        for user_id in user_ids:
            summary.processed += 1
            chat_id = chat_ids.get(user_id)
            if chat_id is None:
                summary.unresolved += 1
            else:
                result = self._send_one(db, content, content_id, chat_id)
                if result.success:
                    summary.sent += 1
                    reached.append(chat_id)
                else:
                    summary.failed += 1
                    summary.errors.append(f"{chat_id}: {result.error or 'send failed'}")

            # An attempted pair leaves the queue before the next send.
            queue.remove_processed(content_id, [user_id])
            db.commit()

        if reached:
            engagement_service.reset_after_contact(db, reached)

    def _send_one(self, db: Session, content, content_id: str, chat_id: str) -> SendResult:
        try:
            return self.sender.send(db, content, chat_id)
        except Exception as exc:
            db.rollback()
            log_event(
                logger,
                "queue_send_failed",
                level=logging.WARNING,
                queue=self.kind.name,
                content_id=content_id,
                chat_id=chat_id,
                error=str(exc),
            )
            return SendResult(success=False, error=str(exc))


def build_post_worker(capability: SendCapability, session_factory: Callable[[], Session]) -> QueueDrainWorker:
    return QueueDrainWorker(kind=POST_QUEUE, sender=PostSender(capability), session_factory=session_factory)


def build_sales_rule_worker(capability: SendCapability, session_factory: Callable[[], Session]) -> QueueDrainWorker:
    return QueueDrainWorker(kind=SALES_RULE_QUEUE, sender=CouponSender(capability), session_factory=session_factory)

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.models.coupon import CouponCode
from app.models.queue import PostQueueItem, SalesRuleQueueItem
from app.models.sales_rule import UserSalesRule
from app.models.user import User
from app.services import recipient_store

logger = logging.getLogger("botcrm.api")


@dataclass(frozen=True)
class UserDeletionSummary:
    users_deleted: int
    coupons_deleted: int
    queue_items_deleted: int
    links_deleted: int
    missing_user_ids: list[str]


def register_user(
    db: Session,
    *,
    chat_id: str,
    user_name: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> tuple[User, bool]:
    """Create the user on first /start or refresh the stored profile.

    A /start counts as contact, so ``updated_at`` advances and the attention
    flag clears. Returns the user and whether it was created.
    """
    chat_id = str(chat_id).strip()
    user = recipient_store.user_by_chat_id(db, chat_id)
    created = user is None
    if created:
        try:
            with db.begin_nested():
                user = User(chat_id=chat_id, is_blocked=False)
                db.add(user)
                db.flush()
        except IntegrityError:
            # A concurrent /start registered the same chat first.
            user = recipient_store.user_by_chat_id(db, chat_id)
            created = False

    user.user_name = user_name or None
    user.first_name = first_name or None
    user.last_name = last_name or None
    user.attention_needed = False
    user.updated_at = datetime.now(timezone.utc)
    db.flush()
    log_event(logger, "bot_user_registered" if created else "bot_user_updated", chat_id=chat_id, user_id=user.id)
    return user, created


def set_block_status(db: Session, chat_id: str, is_blocked: bool) -> User | None:
    """Record that the user blocked or unblocked the bot.

    Unknown chats are ignored. ``updated_at`` is kept.
    """
    user = recipient_store.user_by_chat_id(db, chat_id)
    if user is None:
        return None
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(is_blocked=is_blocked, updated_at=User.updated_at)
        .execution_options(synchronize_session=False)
    )
    db.refresh(user)
    log_event(logger, "bot_user_block_status", chat_id=user.chat_id, is_blocked=is_blocked)
    return user


def list_users(
    db: Session,
    *,
    attention_needed: bool | None = None,
    is_blocked: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[User], int]:
    stmt = select(User)
    if attention_needed is not None:
        stmt = stmt.where(User.attention_needed.is_(attention_needed))
    if is_blocked is not None:
        stmt = stmt.where(User.is_blocked.is_(is_blocked))
    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(stmt.order_by(User.created_at.desc(), User.id.asc()).offset(offset).limit(limit)).scalars().all()
    return list(rows), total


def delete_users(db: Session, user_ids: list[str]) -> UserDeletionSummary:
    """Delete users with their coupons, queued items and sales-rule links.

    Nothing is committed here; the caller commits the whole cascade at once.
    """
    ids = list(dict.fromkeys(user_ids))
    found = db.execute(select(User.id, User.chat_id).where(User.id.in_(ids))).all()
    found_ids = [user_id for user_id, _ in found]
    chat_ids = [chat_id for _, chat_id in found]
    missing = [user_id for user_id in ids if user_id not in set(found_ids)]

    if not found_ids:
        return UserDeletionSummary(
            users_deleted=0,
            coupons_deleted=0,
            queue_items_deleted=0,
            links_deleted=0,
            missing_user_ids=missing,
        )

    coupons_deleted = db.execute(delete(CouponCode).where(CouponCode.chat_id.in_(chat_ids))).rowcount or 0
    queue_items_deleted = 0
    for model in (PostQueueItem, SalesRuleQueueItem):
        queue_items_deleted += db.execute(delete(model).where(model.user_id.in_(found_ids))).rowcount or 0
    links_deleted = db.execute(delete(UserSalesRule).where(UserSalesRule.user_id.in_(found_ids))).rowcount or 0
    users_deleted = db.execute(delete(User).where(User.id.in_(found_ids))).rowcount or 0

    summary = UserDeletionSummary(
        users_deleted=users_deleted,
        coupons_deleted=coupons_deleted,
        queue_items_deleted=queue_items_deleted,
        links_deleted=links_deleted,
        missing_user_ids=missing,
    )
    log_event(
        logger,
        "users_deleted",
        users_deleted=users_deleted,
        coupons_deleted=coupons_deleted,
        queue_items_deleted=queue_items_deleted,
        links_deleted=links_deleted,
    )
    return summary

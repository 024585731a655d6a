import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DomainError, InvalidCouponUpdateError, NotFoundError
from app.core.id_utils import COUPON_CODE_ALPHABET, COUPON_CODE_LENGTH, generate_short_token
from app.core.observability import log_event
from app.models.coupon import CouponCode
from app.models.sales_rule import SalesRule, UserSalesRule
from app.services import content_store, engagement_service, recipient_store
from app.services.send_capability import SendCapability, SendResult

logger = logging.getLogger("botcrm.coupons")

USAGE_STATUSES = {"used", "unused"}


def generate_coupon_code() -> str:
    return generate_short_token(length=COUPON_CODE_LENGTH, alphabet=COUPON_CODE_ALPHABET)


@dataclass(frozen=True)
class IssuedCoupon:
    coupon: CouponCode
    delivery: SendResult | None


def _insert_coupon(db: Session, *, sales_rule: SalesRule, chat_id: str, max_attempts: int) -> CouponCode:
    for attempt in range(1, max_attempts + 1):
        code = generate_coupon_code()
        if db.execute(select(CouponCode.id).where(CouponCode.code == code)).first():
            continue
        coupon = CouponCode(
            code=code,
            chat_id=chat_id,
            sales_rule_id=sales_rule.id,
            max_uses=sales_rule.max_uses,
            uses_count=0,
            is_sent=False,
        )
        try:
            with db.begin_nested():
                db.add(coupon)
                db.flush()
        except IntegrityError:
            log_event(logger, "coupon_code_collision", level=logging.WARNING, attempt=attempt)
            continue
        return coupon
    raise DomainError("Could not generate a unique coupon code")


def _link_user(db: Session, *, sales_rule_id: str, chat_id: str) -> None:
    user = recipient_store.user_by_chat_id(db, chat_id)
    if user is None:
        return
    exists = db.execute(
        select(UserSalesRule.id).where(
            UserSalesRule.user_id == user.id,
            UserSalesRule.sales_rule_id == sales_rule_id,
        )
    ).first()
    if exists:
        return
    try:
        with db.begin_nested():
            db.add(UserSalesRule(user_id=user.id, sales_rule_id=sales_rule_id))
            db.flush()
    except IntegrityError:
        # Another issuer linked the pair first.
        log_event(logger, "user_sales_rule_link_exists", chat_id=chat_id, sales_rule_id=sales_rule_id)


def _notify(sender: SendCapability, *, sales_rule: SalesRule, coupon: CouponCode) -> SendResult:
    try:
        return sender.send_content(coupon.chat_id, content_store.coupon_content(sales_rule, coupon.code))
    except Exception as exc:
        log_event(
            logger,
            "coupon_notification_failed",
            level=logging.WARNING,
            coupon_id=coupon.id,
            chat_id=coupon.chat_id,
            error=str(exc),
        )
        return SendResult(success=False, error=str(exc))


def issue_coupon(
    db: Session,
    *,
    sales_rule: SalesRule,
    chat_id: str,
    sender: SendCapability | None = None,
    max_attempts: int | None = None,
) -> IssuedCoupon:
    """Mint one code for ``chat_id``, link the user and try to deliver it.

    With a sender, the coupon is committed before delivery and ``is_sent`` is
    committed after it, so a delivered code always exists. A failed delivery
    leaves the coupon in place with ``is_sent`` false.
    """
    chat_id = str(chat_id).strip()
    coupon = _insert_coupon(
        db,
        sales_rule=sales_rule,
        chat_id=chat_id,
        max_attempts=settings.coupon_code_max_attempts if max_attempts is None else max_attempts,
    )
    _link_user(db, sales_rule_id=sales_rule.id, chat_id=chat_id)

    delivery = None
    if sender is not None:
        db.commit()
        delivery = _notify(sender, sales_rule=sales_rule, coupon=coupon)
        if delivery.success:
            coupon.is_sent = True
            db.commit()

    log_event(
        logger,
        "coupon_issued",
        coupon_id=coupon.id,
        sales_rule_id=sales_rule.id,
        chat_id=chat_id,
        delivered=bool(delivery and delivery.success),
    )
    return IssuedCoupon(coupon=coupon, delivery=delivery)


def issue_for_sales_rule(
    db: Session,
    *,
    sales_rule_id: str,
    chat_ids,
    sender: SendCapability | None = None,
) -> list[CouponCode]:
    sales_rule = content_store.get_sales_rule(db, sales_rule_id)
    if not sales_rule:
        raise NotFoundError("Sales rule not found")

    issued: list[CouponCode] = []
    delivered: list[str] = []
    try:
        for chat_id in chat_ids:
            result = issue_coupon(db, sales_rule=sales_rule, chat_id=chat_id, sender=sender)
            issued.append(result.coupon)
            if result.delivery and result.delivery.success:
                delivered.append(result.coupon.chat_id)
    finally:
        # Recipients reached before a failure still count as contacted.
        if delivered:
            engagement_service.reset_after_contact(db, delivered)
    return issued


def get_coupon(db: Session, coupon_id: str) -> CouponCode:
    coupon = db.get(CouponCode, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon code not found")
    return coupon


def get_coupon_by_code(db: Session, code: str) -> CouponCode | None:
    normalized = (code or "").strip().upper()
    if not normalized:
        return None
    return db.execute(select(CouponCode).where(CouponCode.code == normalized)).scalar_one_or_none()


def list_coupons(
    db: Session,
    *,
    usage_status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sales_rule_id: str | None = None,
    chat_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[CouponCode], int]:
    stmt = select(CouponCode)
    if usage_status == "used":
        stmt = stmt.where(CouponCode.uses_count > 0)
    elif usage_status == "unused":
        stmt = stmt.where(CouponCode.uses_count == 0)
    elif usage_status is not None:
        raise InvalidCouponUpdateError(f"Unknown usage status '{usage_status}'")
    if date_from:
        stmt = stmt.where(CouponCode.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        stmt = stmt.where(CouponCode.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))
    if sales_rule_id:
        stmt = stmt.where(CouponCode.sales_rule_id == sales_rule_id)
    if chat_id:
        stmt = stmt.where(CouponCode.chat_id == chat_id)

    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(
        stmt.order_by(CouponCode.created_at.desc(), CouponCode.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total


def update_coupon(
    db: Session,
    coupon_id: str,
    *,
    uses_count: int | None = None,
    used_at: datetime | None = None,
    is_sent: bool | None = None,
) -> CouponCode:
    """Admin edit. The usage cap still holds: ``0 <= uses_count <= max_uses``."""
    coupon = get_coupon(db, coupon_id)
    if uses_count is not None:
        if uses_count < 0 or uses_count > coupon.max_uses:
            raise InvalidCouponUpdateError(f"uses_count must be between 0 and {coupon.max_uses}")
        coupon.uses_count = uses_count
    if used_at is not None:
        coupon.used_at = used_at
    if is_sent is not None:
        coupon.is_sent = is_sent
    db.flush()
    return coupon


def mark_as_sent(db: Session, coupon_id: str) -> CouponCode:
    coupon = get_coupon(db, coupon_id)
    coupon.is_sent = True
    db.flush()
    return coupon


def delete_coupon(db: Session, coupon_id: str) -> None:
    coupon = get_coupon(db, coupon_id)
    db.delete(coupon)
    db.flush()

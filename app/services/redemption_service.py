import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.models.coupon import CouponCode
from app.services import coupon_service, recipient_store
from app.services.config_store import ConfigStore

logger = logging.getLogger("botcrm.coupons")

USE_COUPON_PREFIX = "use_coupon:"
COUPON_FULLY_USED = "coupon_fully_used"
COUPON_USED = "coupon_used"
ORDER_LINK_CONFIG_PATH = "admin_path"
ORDER_MESSAGE_TEMPLATE = "Доброго дня, бажаю зробити замовлення з SalesCode:\n{code}"


class RedemptionStatus(str, enum.Enum):
    QUERIED = "queried"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RedemptionResult:
    status: RedemptionStatus
    coupon: CouponCode | None = None
    reason: str | None = None
    order_link: str | None = None

    @property
    def actionable(self) -> bool:
        return self.status == RedemptionStatus.QUERIED


def lookup_code(db: Session, code: str) -> RedemptionResult:
    coupon = coupon_service.get_coupon_by_code(db, code)
    if coupon is None:
        return RedemptionResult(status=RedemptionStatus.REJECTED, reason="coupon_not_found")
    if recipient_store.user_by_chat_id(db, coupon.chat_id) is None:
        return RedemptionResult(status=RedemptionStatus.REJECTED, coupon=coupon, reason="user_not_found")
    if coupon.uses_count >= coupon.max_uses:
        return RedemptionResult(status=RedemptionStatus.EXHAUSTED, coupon=coupon)
    return RedemptionResult(status=RedemptionStatus.QUERIED, coupon=coupon)


def build_order_link(base: str | None, code: str) -> str | None:
    if not base:
        return None
    return f"{base}?text={quote(ORDER_MESSAGE_TEMPLATE.format(code=code), safe='')}"


def confirm_use(db: Session, coupon_id: str, *, config: ConfigStore | None = None) -> RedemptionResult:
    """Spend one use of the coupon.

    The increment is a single conditional UPDATE, so concurrent confirmations
    can never push ``uses_count`` past ``max_uses``. The caller commits.
    """
    stmt = (
        update(CouponCode)
        .where(CouponCode.id == coupon_id, CouponCode.uses_count < CouponCode.max_uses)
        .values(uses_count=CouponCode.uses_count + 1, used_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    updated = db.execute(stmt).rowcount or 0

    coupon = db.get(CouponCode, coupon_id, populate_existing=True)
    if coupon is None:
        return RedemptionResult(status=RedemptionStatus.REJECTED, reason="coupon_not_found")
    if updated == 0:
        log_event(logger, "coupon_confirm_rejected", coupon_id=coupon_id, uses_count=coupon.uses_count)
        return RedemptionResult(status=RedemptionStatus.EXHAUSTED, coupon=coupon)

    order_link = None
    if config is not None:
        order_link = build_order_link(config.get(db, ORDER_LINK_CONFIG_PATH), coupon.code)
    log_event(
        logger,
        "coupon_confirmed",
        coupon_id=coupon.id,
        uses_count=coupon.uses_count,
        max_uses=coupon.max_uses,
    )
    return RedemptionResult(status=RedemptionStatus.CONFIRMED, coupon=coupon, order_link=order_link)


def lookup_keyboard(result: RedemptionResult) -> dict[str, Any] | None:
    if result.coupon is None or result.status == RedemptionStatus.REJECTED:
        return None
    if result.status == RedemptionStatus.EXHAUSTED:
        button = {"text": "❌ Купон полностью использован", "callback_data": COUPON_FULLY_USED}
    else:
        button = {"text": "🎫 Использовать купон", "callback_data": f"{USE_COUPON_PREFIX}{result.coupon.id}"}
    return {"inline_keyboard": [[button]]}


def confirmed_keyboard(result: RedemptionResult) -> dict[str, Any] | None:
    if not result.order_link:
        return None
    return {"inline_keyboard": [[{"text": "🎯 ОТРИМАТИ ЗНИЖКУ 🎯", "url": result.order_link}]]}


def settled_keyboard(status: RedemptionStatus) -> dict[str, Any]:
    """Replaces the buttons on the message the admin tapped."""
    if status == RedemptionStatus.CONFIRMED:
        button = {"text": "✅ Купон использован", "callback_data": COUPON_USED}
    else:
        button = {"text": "❌ Купон уже использован", "callback_data": COUPON_FULLY_USED}
    return {"inline_keyboard": [[button]]}


def lookup_message(result: RedemptionResult, code: str) -> str:
    if result.reason == "coupon_not_found":
        return f'❌ Купон с кодом "{code}" не найден.'
    if result.reason == "user_not_found":
        return f'❌ Пользователь с chat_id "{result.coupon.chat_id}" не найден.'

    coupon = result.coupon
    fully_used = result.status == RedemptionStatus.EXHAUSTED
    usage_label = "Использовано раз (МАКСИМУМ)" if fully_used else "Использовано раз"
    lines = [
        "🔍 *Информация о купоне*",
        "",
        f"📋 *Код:* `{coupon.code}`",
        f"📊 *Максимум использований:* {coupon.max_uses}",
        f"{'❌' if fully_used else '✅'} *{usage_label}:* {coupon.uses_count}",
        f"🎯 *Акция:* {coupon.sales_rule.name}",
        f"📝 *Описание:* {coupon.sales_rule.description or 'Нет описания'}",
    ]
    if fully_used:
        lines += ["", "⚠️ *ВНИМАНИЕ:* Купон уже полностью использован!"]
    return "\n".join(lines)


def confirm_message(result: RedemptionResult) -> str:
    if result.status == RedemptionStatus.REJECTED:
        return "❌ Купон не найден."
    if result.status == RedemptionStatus.EXHAUSTED:
        return "❌ Купон уже использован максимальное количество раз."

    coupon = result.coupon
    used_at = coupon.used_at.strftime("%d.%m.%Y %H:%M:%S") if coupon.used_at else "-"
    lines = [
        "✅ *Купон использован!*",
        "",
        f"📋 *Код:* `{coupon.code}`",
        f"📊 *Использовано:* {coupon.uses_count}/{coupon.max_uses}",
        f"⏰ *Время использования:* {used_at}",
    ]
    if result.order_link:
        lines += ["", "💬 *Перейдите по ссылке ниже для оформления заказа:*"]
    return "\n".join(lines)

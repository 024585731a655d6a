import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.services import redemption_service
from app.services.config_store import ConfigStore
from app.services.redemption_service import RedemptionStatus
from app.services.send_capability import SendCapability, TextContent

logger = logging.getLogger("botcrm.telegram")


@dataclass(frozen=True)
class AdminBotOutcome:
    action: str
    status: RedemptionStatus | None = None
    coupon_id: str | None = None


class AdminBotHandler:
    """Maps admin-bot updates onto the coupon redemption protocol.

    Text messages are coupon lookups. ``use_coupon:<id>`` callbacks confirm a
    use. Database changes are committed before any reply is sent.
    """

    def __init__(self, capability: SendCapability, config: ConfigStore):
        self.capability = capability
        self.config = config

    def handle_update(self, db: Session, update: dict[str, Any]) -> AdminBotOutcome:
        if update.get("callback_query"):
            return self._handle_callback(db, update["callback_query"])
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None or not text or text.startswith("/"):
            return AdminBotOutcome(action="ignored")
        return self._handle_lookup(db, str(chat_id), text)

    def _reply(self, chat_id: str, text: str, reply_markup: dict[str, Any] | None = None) -> None:
        result = self.capability.send_content(
            chat_id,
            TextContent(text=text, reply_markup=reply_markup, parse_mode="Markdown"),
        )
        if not result.success:
            log_event(logger, "admin_bot_reply_failed", level=logging.WARNING, chat_id=chat_id, error=result.error)

    def _handle_lookup(self, db: Session, chat_id: str, text: str) -> AdminBotOutcome:
        code = text.upper()
        result = redemption_service.lookup_code(db, code)
        log_event(logger, "admin_bot_lookup", chat_id=chat_id, code=code, status=result.status.value, reason=result.reason)
        self._reply(
            chat_id,
            redemption_service.lookup_message(result, code),
            redemption_service.lookup_keyboard(result),
        )
        return AdminBotOutcome(
            action="lookup",
            status=result.status,
            coupon_id=result.coupon.id if result.coupon else None,
        )

    def _handle_callback(self, db: Session, callback: dict[str, Any]) -> AdminBotOutcome:
        callback_id = str(callback.get("id") or "")
        data = callback.get("data") or ""
        message = callback.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")

        if data == redemption_service.COUPON_FULLY_USED:
            self.capability.answer_callback(callback_id, text="❌ Купон уже полностью использован!", show_alert=True)
            return AdminBotOutcome(action="fully_used_alert", status=RedemptionStatus.EXHAUSTED)

        if not data.startswith(redemption_service.USE_COUPON_PREFIX) or chat_id is None:
            self.capability.answer_callback(callback_id)
            return AdminBotOutcome(action="ignored")

        coupon_id = data[len(redemption_service.USE_COUPON_PREFIX):]
        result = redemption_service.confirm_use(db, coupon_id, config=self.config)
        db.commit()

        chat_id = str(chat_id)
        self._reply(
            chat_id,
            redemption_service.confirm_message(result),
            redemption_service.confirmed_keyboard(result),
        )
        if message.get("message_id") is not None and result.status != RedemptionStatus.REJECTED:
            self.capability.edit_reply_markup(
                chat_id,
                str(message["message_id"]),
                redemption_service.settled_keyboard(result.status),
            )
        self.capability.answer_callback(callback_id)
        return AdminBotOutcome(action="confirm", status=result.status, coupon_id=coupon_id)

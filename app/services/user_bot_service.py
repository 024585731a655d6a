import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.services import user_service
from app.services.config_store import ConfigStore
from app.services.send_capability import PostContent, SendCapability

logger = logging.getLogger("botcrm.telegram")

START_MESSAGE_TEXT_PATH = "start_message_text"
START_MESSAGE_IMAGE_PATH = "start_message_image"
BLOCKED_MEMBER_STATUSES = {"kicked", "left"}


@dataclass(frozen=True)
class UserBotOutcome:
    action: str
    chat_id: str | None = None
    user_id: str | None = None
    is_blocked: bool | None = None


class UserBotHandler:
    """Keeps ``bot_users`` in step with the customer-facing bot.

    ``/start`` registers the sender or refreshes their profile, then sends the
    configured start message. ``my_chat_member`` updates record when a user
    blocks or unblocks the bot.
    """

    def __init__(self, capability: SendCapability, config: ConfigStore):
        self.capability = capability
        self.config = config

    def handle_update(self, db: Session, update: dict[str, Any]) -> UserBotOutcome:
        if update.get("my_chat_member"):
            return self._handle_member_update(db, update["my_chat_member"])
        message = update.get("message") or {}
        text = (message.get("text") or "").strip()
        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None or not text.startswith("/start"):
            return UserBotOutcome(action="ignored")
        return self._handle_start(db, str(chat_id), message.get("from") or {})

    def _handle_start(self, db: Session, chat_id: str, sender: dict[str, Any]) -> UserBotOutcome:
        user, created = user_service.register_user(
            db,
            chat_id=chat_id,
            user_name=sender.get("username"),
            first_name=sender.get("first_name"),
            last_name=sender.get("last_name"),
        )
        db.commit()
        self._send_start_message(db, chat_id)
        return UserBotOutcome(
            action="registered" if created else "updated",
            chat_id=chat_id,
            user_id=user.id,
            is_blocked=user.is_blocked,
        )

    def _send_start_message(self, db: Session, chat_id: str) -> None:
        values = self.config.get_many(db, [START_MESSAGE_TEXT_PATH, START_MESSAGE_IMAGE_PATH])
        text = values[START_MESSAGE_TEXT_PATH]
        if not text:
            return
        result = self.capability.send_content(
            chat_id,
            PostContent(description=text, image=values[START_MESSAGE_IMAGE_PATH]),
        )
        if not result.success:
            log_event(logger, "start_message_failed", level=logging.WARNING, chat_id=chat_id, error=result.error)

    def _handle_member_update(self, db: Session, member: dict[str, Any]) -> UserBotOutcome:
        chat_id = (member.get("chat") or {}).get("id")
        status = (member.get("new_chat_member") or {}).get("status")
        if chat_id is None or not status:
            return UserBotOutcome(action="ignored")

        is_blocked = status in BLOCKED_MEMBER_STATUSES
        user = user_service.set_block_status(db, str(chat_id), is_blocked)
        if user is None:
            return UserBotOutcome(action="ignored", chat_id=str(chat_id))
        db.commit()
        return UserBotOutcome(
            action="blocked" if is_blocked else "unblocked",
            chat_id=user.chat_id,
            user_id=user.id,
            is_blocked=is_blocked,
        )

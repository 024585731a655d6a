import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Union

import httpx

from app.core.config import settings
from app.core.observability import log_event

logger = logging.getLogger("botcrm.telegram")


@dataclass(frozen=True)
class PostContent:
    description: str
    image: str | None = None


@dataclass(frozen=True)
class CouponContent:
    code: str
    sales_rule_name: str
    description: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class TextContent:
    text: str
    reply_markup: dict[str, Any] | None = None
    parse_mode: str | None = None


Content = Union[PostContent, CouponContent, TextContent]


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


class SendCapability(Protocol):
    name: str

    def send_content(self, chat_id: str, content: Content) -> SendResult:
        ...

    def answer_callback(self, callback_id: str, *, text: str | None = None, show_alert: bool = False) -> SendResult:
        ...

    def edit_reply_markup(self, chat_id: str, message_id: str, reply_markup: dict[str, Any]) -> SendResult:
        ...

    def close(self) -> None:
        ...


def render_coupon_text(content: CouponContent) -> str:
    parts = [f"🎁 {content.sales_rule_name}"]
    if content.description:
        parts.append(content.description)
    parts.append(f"SalesCode: {content.code}")
    return "\n\n".join(parts)


def _caption_and_image(content: Content) -> tuple[str, str | None]:
    if isinstance(content, PostContent):
        return content.description, content.image
    if isinstance(content, CouponContent):
        return render_coupon_text(content), content.image
    return content.text, None


class TelegramSendCapability:
    """Telegram Bot API client.

    Every call carries an explicit timeout; a timeout or transport error is
    reported as a failed ``SendResult`` instead of being raised.
    """

    name = "telegram"

    def __init__(
        self,
        *,
        token: str,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        uploads_dir: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._token = token
        self._base_url = (base_url or settings.telegram_api_base_url).rstrip("/")
        self._uploads_dir = Path(uploads_dir or settings.uploads_dir)
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds or settings.telegram_request_timeout_seconds),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _method_url(self, method: str) -> str:
        return f"{self._base_url}/bot{self._token}/{method}"

    def _call(
        self,
        method: str,
        *,
        data: dict[str, Any],
        files: dict[str, Any] | None = None,
    ) -> SendResult:
        try:
            response = self._client.post(self._method_url(method), data=data, files=files)
            payload = response.json()
        except httpx.TimeoutException:
            log_event(logger, "telegram_timeout", level=logging.WARNING, method=method)
            return SendResult(success=False, error="timeout")
        except (httpx.HTTPError, ValueError) as exc:
            log_event(logger, "telegram_transport_error", level=logging.WARNING, method=method, error=str(exc))
            return SendResult(success=False, error=str(exc))

        if not payload.get("ok"):
            description = payload.get("description") or f"HTTP {response.status_code}"
            return SendResult(success=False, error=description)

        result = payload.get("result")
        message_id = None
        if isinstance(result, dict) and result.get("message_id") is not None:
            message_id = str(result["message_id"])
        return SendResult(success=True, message_id=message_id)

    def _send_text(
        self,
        chat_id: str,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str | None = None,
    ) -> SendResult:
        data: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            data["reply_markup"] = json.dumps(reply_markup)
        if parse_mode:
            data["parse_mode"] = parse_mode
        return self._call("sendMessage", data=data)

    def _send_photo(self, chat_id: str, image: str, caption: str) -> SendResult:
        data: dict[str, Any] = {"chat_id": chat_id, "caption": caption}
        if image.startswith(("http://", "https://")):
            data["photo"] = image
            return self._call("sendPhoto", data=data)

        image_path = self._uploads_dir / image
        if not image_path.is_file():
            return SendResult(success=False, error=f"Image not found: {image}")
        with image_path.open("rb") as handle:
            return self._call("sendPhoto", data=data, files={"photo": (image_path.name, handle)})

    def send_content(self, chat_id: str, content: Content) -> SendResult:
        if isinstance(content, TextContent):
            return self._send_text(
                chat_id,
                content.text,
                reply_markup=content.reply_markup,
                parse_mode=content.parse_mode,
            )

        caption, image = _caption_and_image(content)
        if image:
            result = self._send_photo(chat_id, image, caption)
            if result.success:
                return result
            log_event(
                logger,
                "telegram_photo_fallback",
                level=logging.WARNING,
                chat_id=chat_id,
                error=result.error,
            )
        return self._send_text(chat_id, caption)

    def answer_callback(self, callback_id: str, *, text: str | None = None, show_alert: bool = False) -> SendResult:
        data: dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            data["text"] = text
        if show_alert:
            data["show_alert"] = "true"
        return self._call("answerCallbackQuery", data=data)

    def edit_reply_markup(self, chat_id: str, message_id: str, reply_markup: dict[str, Any]) -> SendResult:
        return self._call(
            "editMessageReplyMarkup",
            data={
                "chat_id": chat_id,
                "message_id": message_id,
                "reply_markup": json.dumps(reply_markup),
            },
        )


@dataclass
class StubSendCapability:
    """Records every call; chat ids listed in ``failing_chat_ids`` fail."""

    name: str = "stub"
    failing_chat_ids: set[str] = field(default_factory=set)
    raising_chat_ids: set[str] = field(default_factory=set)
    sent: list[tuple[str, Content]] = field(default_factory=list)
    callbacks: list[dict[str, Any]] = field(default_factory=list)
    edits: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = 0
        self.closed = False

    def send_content(self, chat_id: str, content: Content) -> SendResult:
        chat_id = str(chat_id)
        if chat_id in self.raising_chat_ids:
            raise RuntimeError(f"send to {chat_id} raised")
        with self._lock:
            self.sent.append((chat_id, content))
            self._counter += 1
            message_id = f"stub-{self._counter}"
        if chat_id in self.failing_chat_ids:
            return SendResult(success=False, error="Forbidden: bot was blocked by the user")
        return SendResult(success=True, message_id=message_id)

    def answer_callback(self, callback_id: str, *, text: str | None = None, show_alert: bool = False) -> SendResult:
        self.callbacks.append({"callback_id": callback_id, "text": text, "show_alert": show_alert})
        return SendResult(success=True)

    def edit_reply_markup(self, chat_id: str, message_id: str, reply_markup: dict[str, Any]) -> SendResult:
        self.edits.append({"chat_id": str(chat_id), "message_id": str(message_id), "reply_markup": reply_markup})
        return SendResult(success=True)

    def close(self) -> None:
        self.closed = True

    def sent_to(self) -> list[str]:
        return [chat_id for chat_id, _ in self.sent]


def _build_telegram(token: str | None) -> SendCapability:
    if not token:
        raise ValueError("Telegram send capability requires a bot token")
    return TelegramSendCapability(token=token)


def get_send_capability(name: str, *, token: str | None = None) -> SendCapability:
    normalized = (name or "").strip().lower()
    if normalized == "telegram":
        return _build_telegram(token if token is not None else settings.telegram_bot_token)
    if normalized == "stub":
        return StubSendCapability()
    raise ValueError(f"Unknown send capability '{name}'. Available: stub, telegram")

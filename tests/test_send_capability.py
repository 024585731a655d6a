import json
from urllib.parse import parse_qs

import httpx
import pytest

from app.services.send_capability import (
    CouponContent,
    PostContent,
    StubSendCapability,
    TelegramSendCapability,
    TextContent,
    get_send_capability,
    render_coupon_text,
)


class FakeTelegram:
    def __init__(self, *, failing_methods=(), timeout_methods=()):
        self.calls = []
        self.failing_methods = set(failing_methods)
        self.timeout_methods = set(timeout_methods)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        content_type = request.headers.get("content-type", "")
        fields = {} if content_type.startswith("multipart/") else {
            key: values[0] for key, values in parse_qs(request.content.decode()).items()
        }
        self.calls.append({"method": method, "path": request.url.path, "fields": fields, "content_type": content_type})

        if method in self.timeout_methods:
            raise httpx.ReadTimeout("timed out", request=request)
        if method in self.failing_methods:
            return httpx.Response(400, json={"ok": False, "description": "Bad Request: wrong file identifier"})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(self.calls)}})


def _capability(fake, tmp_path=None):
    return TelegramSendCapability(
        token="123:abc",
        base_url="https://telegram.test",
        timeout_seconds=2,
        uploads_dir=str(tmp_path) if tmp_path else None,
        transport=httpx.MockTransport(fake),
    )


def test_text_message_payload():
    fake = FakeTelegram()
    markup = {"inline_keyboard": [[{"text": "Go", "callback_data": "go"}]]}

    result = _capability(fake).send_content("111", TextContent(text="*hi*", reply_markup=markup, parse_mode="Markdown"))

    assert result.success is True
    assert result.message_id == "1"
    call = fake.calls[0]
    assert call["path"] == "/bot123:abc/sendMessage"
    assert call["fields"]["chat_id"] == "111"
    assert call["fields"]["parse_mode"] == "Markdown"
    assert json.loads(call["fields"]["reply_markup"]) == markup


def test_post_with_image_url_uses_send_photo():
    fake = FakeTelegram()

    result = _capability(fake).send_content("111", PostContent(description="New arrivals", image="https://cdn.test/a.jpg"))

    assert result.success is True
    assert [call["method"] for call in fake.calls] == ["sendPhoto"]
    assert fake.calls[0]["fields"]["caption"] == "New arrivals"
    assert fake.calls[0]["fields"]["photo"] == "https://cdn.test/a.jpg"


def test_failed_photo_falls_back_to_text():
    fake = FakeTelegram(failing_methods={"sendPhoto"})

    result = _capability(fake).send_content("111", PostContent(description="New arrivals", image="https://cdn.test/a.jpg"))

    assert result.success is True
    assert [call["method"] for call in fake.calls] == ["sendPhoto", "sendMessage"]
    assert fake.calls[1]["fields"]["text"] == "New arrivals"


def test_local_upload_is_sent_as_multipart(tmp_path):
    (tmp_path / "banner.jpg").write_bytes(b"\xff\xd8\xff")
    fake = FakeTelegram()

    result = _capability(fake, tmp_path).send_content("111", PostContent(description="Banner", image="banner.jpg"))

    assert result.success is True
    assert fake.calls[0]["method"] == "sendPhoto"
    assert fake.calls[0]["content_type"].startswith("multipart/form-data")


def test_missing_local_upload_falls_back_to_text(tmp_path):
    fake = FakeTelegram()

    result = _capability(fake, tmp_path).send_content("111", PostContent(description="Banner", image="gone.jpg"))

    assert result.success is True
    assert [call["method"] for call in fake.calls] == ["sendMessage"]


def test_coupon_text_rendering():
    content = CouponContent(code="SPRING2026", sales_rule_name="Spring sale", description="-20%")

    assert render_coupon_text(content) == "🎁 Spring sale\n\n-20%\n\nSalesCode: SPRING2026"
    assert render_coupon_text(CouponContent(code="X1", sales_rule_name="Sale")) == "🎁 Sale\n\nSalesCode: X1"


def test_timeout_is_reported_not_raised():
    fake = FakeTelegram(timeout_methods={"sendMessage"})

    result = _capability(fake).send_content("111", TextContent(text="hello"))

    assert result.success is False
    assert result.error == "timeout"


def test_api_error_description_is_returned():
    fake = FakeTelegram(failing_methods={"sendMessage"})

    result = _capability(fake).send_content("111", TextContent(text="hello"))

    assert result.success is False
    assert result.error == "Bad Request: wrong file identifier"


def test_callback_answer_and_markup_edit():
    fake = FakeTelegram()
    capability = _capability(fake)

    capability.answer_callback("cb-1", text="Done", show_alert=True)
    capability.edit_reply_markup("111", "42", {"inline_keyboard": []})

    answer, edit = fake.calls
    assert answer["method"] == "answerCallbackQuery"
    assert answer["fields"] == {"callback_query_id": "cb-1", "text": "Done", "show_alert": "true"}
    assert edit["method"] == "editMessageReplyMarkup"
    assert edit["fields"]["message_id"] == "42"


def test_registry_resolves_known_capabilities():
    assert isinstance(get_send_capability("stub"), StubSendCapability)
    assert isinstance(get_send_capability(" Telegram ", token="123:abc"), TelegramSendCapability)

    with pytest.raises(ValueError, match="Available: stub, telegram"):
        get_send_capability("carrier-pigeon")

    with pytest.raises(ValueError, match="bot token"):
        get_send_capability("telegram", token="")


def test_close_releases_http_client():
    capability = _capability(FakeTelegram())

    capability.close()

    assert capability._client.is_closed is True

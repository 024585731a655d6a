from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from app.models.user import User
from app.services import user_service
from app.services.config_store import ConfigStore
from app.services.send_capability import PostContent, StubSendCapability
from app.services.user_bot_service import START_MESSAGE_IMAGE_PATH, START_MESSAGE_TEXT_PATH, UserBotHandler


def _start(chat_id=111, **sender):
    return {
        "update_id": 1,
        "message": {
            "message_id": 5,
            "chat": {"id": chat_id},
            "from": {"id": chat_id, **sender},
            "text": "/start",
        },
    }


def _member_update(chat_id, status):
    return {
        "update_id": 2,
        "my_chat_member": {
            "chat": {"id": chat_id},
            "old_chat_member": {"status": "member"},
            "new_chat_member": {"status": status},
        },
    }


def _user(db, chat_id):
    return db.execute(
        select(User).where(User.chat_id == chat_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _naive(value):
    return value.replace(tzinfo=None)


def test_start_registers_new_user(session_local):
    handler = UserBotHandler(StubSendCapability(), ConfigStore(ttl_seconds=0))

    with session_local() as db:
        outcome = handler.handle_update(db, _start(111, username="olena", first_name="Olena", last_name="K"))

    assert outcome.action == "registered"
    assert outcome.chat_id == "111"
    with session_local() as db:
        user = _user(db, "111")
        assert user.id == outcome.user_id
        assert (user.user_name, user.first_name, user.last_name) == ("olena", "Olena", "K")
        assert user.is_blocked is False
        assert user.attention_needed is False


def test_repeated_start_refreshes_profile_and_counts_as_contact(session_local):
    stale = datetime.now(timezone.utc) - timedelta(days=30)
    with session_local() as db:
        db.add(User(chat_id="111", first_name="Old", attention_needed=True))
        db.commit()
        db.execute(update(User).values(updated_at=stale, attention_needed=True))
        db.commit()

    handler = UserBotHandler(StubSendCapability(), ConfigStore(ttl_seconds=0))
    with session_local() as db:
        outcome = handler.handle_update(db, _start(111, first_name="New"))

    assert outcome.action == "updated"
    with session_local() as db:
        user = _user(db, "111")
        assert user.first_name == "New"
        assert user.user_name is None
        assert user.attention_needed is False
        assert _naive(user.updated_at) > _naive(stale)
        assert db.execute(select(User)).scalars().all() == [user]


def test_start_sends_configured_start_message(session_local):
    sender = StubSendCapability()
    config = ConfigStore(ttl_seconds=0)
    handler = UserBotHandler(sender, config)

    with session_local() as db:
        config.set(db, START_MESSAGE_TEXT_PATH, "Welcome to the shop")
        config.set(db, START_MESSAGE_IMAGE_PATH, "uploads/welcome.jpg")
        handler.handle_update(db, _start(111))

    assert sender.sent == [("111", PostContent(description="Welcome to the shop", image="uploads/welcome.jpg"))]


def test_start_without_start_message_sends_nothing(session_local):
    sender = StubSendCapability()
    handler = UserBotHandler(sender, ConfigStore(ttl_seconds=0))

    with session_local() as db:
        handler.handle_update(db, _start(111))

    assert sender.sent == []


def test_other_messages_are_ignored(session_local):
    handler = UserBotHandler(StubSendCapability(), ConfigStore(ttl_seconds=0))

    with session_local() as db:
        message = _start(111)
        message["message"]["text"] = "hello"
        assert handler.handle_update(db, message).action == "ignored"
        assert handler.handle_update(db, {"update_id": 3}).action == "ignored"
        assert db.execute(select(User)).scalars().all() == []


def test_block_and_unblock_keep_updated_at(session_local):
    stale = datetime.now(timezone.utc) - timedelta(days=5)
    with session_local() as db:
        db.add(User(chat_id="111"))
        db.commit()
        db.execute(update(User).values(updated_at=stale))
        db.commit()

    handler = UserBotHandler(StubSendCapability(), ConfigStore(ttl_seconds=0))
    seen = []
    for status in ("kicked", "member", "left"):
        with session_local() as db:
            outcome = handler.handle_update(db, _member_update(111, status))
            seen.append((outcome.action, _user(db, "111").is_blocked))

    assert seen == [("blocked", True), ("unblocked", False), ("blocked", True)]
    with session_local() as db:
        assert _naive(_user(db, "111").updated_at) == _naive(stale)


def test_block_status_for_unknown_chat_is_ignored(session_local):
    handler = UserBotHandler(StubSendCapability(), ConfigStore(ttl_seconds=0))

    with session_local() as db:
        outcome = handler.handle_update(db, _member_update(999, "kicked"))
        assert outcome.action == "ignored"
        assert user_service.set_block_status(db, "999", True) is None
        assert db.execute(select(User)).scalars().all() == []


def test_registered_user_receives_broadcasts(test_context, stub_sender):
    client, _ = test_context

    res = client.post("/bot/webhook", json=_start(111, first_name="Olena"))
    assert res.status_code == 200, res.text
    assert res.json()["action"] == "registered"

    post = client.post("/posts", json={"description": "New arrivals"}).json()
    queued = client.post(f"/broadcast/{post['id']}/all")
    assert queued.status_code == 200, queued.text
    client.post("/cron/run-post-queue-process")

    assert stub_sender.sent_to() == ["111"]

    blocked = client.post("/bot/webhook", json=_member_update(111, "kicked"))
    assert blocked.json()["is_blocked"] is True
    users = client.get("/users", params={"is_blocked": True}).json()
    assert [user["chat_id"] for user in users["items"]] == ["111"]

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.observability import log_event
from app.services.admin_bot_service import AdminBotHandler
from app.services.config_store import ConfigStore
from app.services.drain_worker import QueueDrainWorker, build_post_worker, build_sales_rule_worker
from app.services.engagement_service import EngagementTracker
from app.services.send_capability import SendCapability, StubSendCapability, get_send_capability
from app.services.user_bot_service import UserBotHandler

logger = logging.getLogger("botcrm.jobs")


@dataclass
class Runtime:
    """Long-lived collaborators shared by the routers and the scheduler."""

    send_capability: SendCapability
    admin_capability: SendCapability
    config: ConfigStore
    post_worker: QueueDrainWorker
    sales_rule_worker: QueueDrainWorker
    engagement: EngagementTracker
    admin_bot: AdminBotHandler
    user_bot: UserBotHandler

    def close(self) -> None:
        self.send_capability.close()
        if self.admin_capability is not self.send_capability:
            self.admin_capability.close()


def _capability_for(token: str | None, role: str) -> SendCapability:
    name = settings.send_capability_default
    if name == "telegram" and not token:
        log_event(logger, "send_capability_unconfigured", level=logging.WARNING, role=role, fallback="stub")
        return StubSendCapability(name=f"{role}_stub")
    return get_send_capability(name, token=token)


def build_runtime(
    session_factory: Callable[[], Session],
    *,
    send_capability: SendCapability | None = None,
    admin_capability: SendCapability | None = None,
    config: ConfigStore | None = None,
) -> Runtime:
    send_capability = send_capability or _capability_for(settings.telegram_bot_token, "bot")
    admin_capability = admin_capability or _capability_for(settings.telegram_admin_bot_token, "admin_bot")
    config = config or ConfigStore()
    return Runtime(
        send_capability=send_capability,
        admin_capability=admin_capability,
        config=config,
        post_worker=build_post_worker(send_capability, session_factory),
        sales_rule_worker=build_sales_rule_worker(send_capability, session_factory),
        engagement=EngagementTracker(session_factory),
        admin_bot=AdminBotHandler(admin_capability, config),
        user_bot=UserBotHandler(send_capability, config),
    )


_runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            from app.db.session import SessionLocal

            _runtime = build_runtime(SessionLocal)
        return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    global _runtime
    with _runtime_lock:
        _runtime = runtime


def close_runtime() -> None:
    """Release the Telegram clients of the current runtime, if one was built."""
    global _runtime
    with _runtime_lock:
        current, _runtime = _runtime, None
    if current is not None:
        current.close()
        log_event(logger, "runtime_closed")

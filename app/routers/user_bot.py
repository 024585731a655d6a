from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import WEBHOOK_ERRORS, get_db, require_webhook_secret
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/bot", tags=["bot"], dependencies=[Depends(require_webhook_secret)])


@router.post(
    "/webhook",
    summary="Telegram webhook for the customer bot: registration and block status",
    responses=error_responses(403, 500, path="/bot/webhook", messages=WEBHOOK_ERRORS),
)
def user_bot_webhook(
    update: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    outcome = runtime.user_bot.handle_update(db, update)
    return {
        "ok": True,
        "action": outcome.action,
        "chat_id": outcome.chat_id,
        "user_id": outcome.user_id,
        "is_blocked": outcome.is_blocked,
    }

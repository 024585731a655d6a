from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import WEBHOOK_ERRORS, get_db, require_webhook_secret
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/admin-bot", tags=["admin-bot"], dependencies=[Depends(require_webhook_secret)])


@router.post(
    "/webhook",
    summary="Telegram webhook for the coupon confirmation bot",
    responses=error_responses(403, 500, path="/admin-bot/webhook", messages=WEBHOOK_ERRORS),
)
def admin_bot_webhook(
    update: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    outcome = runtime.admin_bot.handle_update(db, update)
    return {
        "ok": True,
        "action": outcome.action,
        "status": outcome.status.value if outcome.status else None,
        "coupon_id": outcome.coupon_id,
    }

from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Gate admin routers behind ADMIN_API_KEY when one is configured."""
    expected = settings.admin_api_key
    if not expected:
        return
    if x_admin_key != expected:
        raise HTTPException(status_code=403, detail="Invalid admin key")


WEBHOOK_ERRORS = {403: "Invalid webhook secret"}


def require_webhook_secret(x_telegram_bot_api_secret_token: str | None = Header(default=None)) -> None:
    """Telegram echoes the secret set with setWebhook in this header."""
    expected = settings.telegram_webhook_secret
    if expected and x_telegram_bot_api_secret_token != expected:
        raise HTTPException(status_code=403, detail=WEBHOOK_ERRORS[403])

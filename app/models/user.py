from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.core.id_utils import generate_shortuuid


class User(Base):
    __tablename__ = "bot_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    chat_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    user_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    attention_needed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Last successful contact; the attention scan must never bump it.
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_bot_users_attention_updated_at", "attention_needed", "updated_at"),
        Index("ix_bot_users_blocked_attention", "is_blocked", "attention_needed"),
    )

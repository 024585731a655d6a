from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import PaginationMeta


class BotUserOut(BaseModel):
    id: str
    chat_id: str
    user_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_blocked: bool
    attention_needed: bool
    created_at: datetime
    updated_at: datetime


class BotUserListOut(BaseModel):
    items: list[BotUserOut]
    pagination: PaginationMeta


class UserDeleteIn(BaseModel):
    user_ids: list[str] = Field(min_length=1, max_length=10_000)


class UserDeleteOut(BaseModel):
    users_deleted: int
    coupons_deleted: int
    queue_items_deleted: int
    links_deleted: int
    missing_user_ids: list[str]

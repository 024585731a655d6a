from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import PaginationMeta


class PostCreateIn(BaseModel):
    description: str = Field(min_length=1, max_length=4096)
    image: str | None = Field(default=None, max_length=255)


class PostOut(BaseModel):
    id: str
    description: str
    image: str | None = None
    created_at: datetime
    updated_at: datetime


class PostListOut(BaseModel):
    items: list[PostOut]
    pagination: PaginationMeta

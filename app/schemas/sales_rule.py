from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.common import PaginationMeta


class SalesRuleCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=4000)
    image: str | None = Field(default=None, max_length=255)
    max_uses: int = Field(default=1, ge=1, le=1_000_000)


class SalesRuleUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=4000)
    image: str | None = Field(default=None, max_length=255)
    max_uses: int | None = Field(default=None, ge=1, le=1_000_000)

    @model_validator(mode="after")
    def validate_has_field(self) -> "SalesRuleUpdateIn":
        if self.name is None and self.description is None and self.image is None and self.max_uses is None:
            raise ValueError("At least one field must be provided")
        return self


class SalesRuleOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    image: str | None = None
    max_uses: int
    coupons_issued: int = 0
    coupons_used: int = 0
    created_at: datetime
    updated_at: datetime


class SalesRuleListOut(BaseModel):
    items: list[SalesRuleOut]
    pagination: PaginationMeta


class SalesRuleSendIn(BaseModel):
    """Chat ids of the recipients, as stored on the bot users."""

    user_ids: list[str] = Field(min_length=1, max_length=10_000)

    @field_validator("user_ids", mode="before")
    @classmethod
    def coerce_user_ids(cls, value):
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class SalesRuleDeleteOut(BaseModel):
    sales_rule_id: str
    coupons_deleted: int
    links_deleted: int
    queue_items_deleted: int

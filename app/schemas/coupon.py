from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.schemas.common import PaginationMeta

UsageStatus = Literal["used", "unused"]
RedemptionStatusOut = Literal["queried", "confirmed", "rejected", "exhausted"]


class CouponSalesRuleOut(BaseModel):
    id: str
    name: str
    description: str | None = None


class CouponOut(BaseModel):
    id: str
    code: str
    chat_id: str
    sales_rule_id: str
    sales_rule: CouponSalesRuleOut | None = None
    max_uses: int
    uses_count: int
    used_at: datetime | None = None
    is_sent: bool
    created_at: datetime
    updated_at: datetime


class CouponListOut(BaseModel):
    items: list[CouponOut]
    pagination: PaginationMeta


class CouponUpdateIn(BaseModel):
    uses_count: int | None = Field(default=None, ge=0)
    used_at: datetime | None = None
    is_sent: bool | None = None

    @model_validator(mode="after")
    def validate_has_field(self) -> "CouponUpdateIn":
        if self.uses_count is None and self.used_at is None and self.is_sent is None:
            raise ValueError("At least one field must be provided")
        return self


class CouponIssueOut(BaseModel):
    sales_rule_id: str
    issued_count: int
    items: list[CouponOut]


class RedemptionOut(BaseModel):
    status: RedemptionStatusOut
    reason: str | None = None
    order_link: str | None = None
    coupon: CouponOut | None = None

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.id_utils import generate_shortuuid
from app.db.base import Base
from app.models.sales_rule import SalesRule


class CouponCode(Base):
    __tablename__ = "coupon_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    # Raw recipient identity; a coupon may outlive the user row.
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sales_rule_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sales_rules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    uses_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    sales_rule: Mapped[SalesRule] = relationship(lazy="joined")

    __table_args__ = (
        CheckConstraint("uses_count >= 0", name="ck_coupon_codes_uses_non_negative"),
        CheckConstraint("uses_count <= max_uses", name="ck_coupon_codes_uses_within_cap"),
        Index("ix_coupon_codes_sales_rule_created_at", "sales_rule_id", "created_at"),
    )

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.core.observability import log_event
from app.models.coupon import CouponCode
from app.models.sales_rule import SalesRule, UserSalesRule
from app.services.dispatch_queue import sales_rule_queue

logger = logging.getLogger("botcrm.coupons")


@dataclass(frozen=True)
class SalesRuleDeletion:
    sales_rule_id: str
    coupons_deleted: int
    links_deleted: int
    queue_items_deleted: int


def get_sales_rule(db: Session, sales_rule_id: str) -> SalesRule:
    sales_rule = db.get(SalesRule, sales_rule_id)
    if not sales_rule:
        raise NotFoundError("Sales rule not found")
    return sales_rule


def list_sales_rules(db: Session, *, limit: int = 50, offset: int = 0) -> tuple[list[SalesRule], int]:
    total = int(db.execute(select(func.count(SalesRule.id))).scalar_one())
    rows = db.execute(
        select(SalesRule).order_by(SalesRule.created_at.desc(), SalesRule.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total


def coupon_counts(db: Session, sales_rule_ids: list[str]) -> dict[str, tuple[int, int]]:
    """(issued, used) coupon counts per sales rule."""
    if not sales_rule_ids:
        return {}
    rows = db.execute(
        select(
            CouponCode.sales_rule_id,
            func.count(CouponCode.id),
            func.coalesce(func.sum(CouponCode.uses_count), 0),
        )
        .where(CouponCode.sales_rule_id.in_(sales_rule_ids))
        .group_by(CouponCode.sales_rule_id)
    ).all()
    return {sales_rule_id: (int(issued), int(used)) for sales_rule_id, issued, used in rows}


def create_sales_rule(
    db: Session,
    *,
    name: str,
    description: str | None,
    image: str | None,
    max_uses: int,
) -> SalesRule:
    sales_rule = SalesRule(name=name, description=description, image=image, max_uses=max_uses)
    db.add(sales_rule)
    db.flush()
    return sales_rule


def update_sales_rule(db: Session, sales_rule_id: str, **changes) -> SalesRule:
    """Issued coupons keep the ``max_uses`` they were minted with."""
    sales_rule = get_sales_rule(db, sales_rule_id)
    for key in ("name", "description", "image", "max_uses"):
        if key in changes and changes[key] is not None:
            setattr(sales_rule, key, changes[key])
    db.flush()
    return sales_rule


def delete_sales_rule(db: Session, sales_rule_id: str) -> SalesRuleDeletion:
    sales_rule = get_sales_rule(db, sales_rule_id)
    coupons_deleted = db.execute(delete(CouponCode).where(CouponCode.sales_rule_id == sales_rule_id)).rowcount or 0
    links_deleted = db.execute(
        delete(UserSalesRule).where(UserSalesRule.sales_rule_id == sales_rule_id)
    ).rowcount or 0
    queue_items_deleted = sales_rule_queue(db).remove_content(sales_rule_id)
    db.delete(sales_rule)
    db.flush()

    result = SalesRuleDeletion(
        sales_rule_id=sales_rule_id,
        coupons_deleted=coupons_deleted,
        links_deleted=links_deleted,
        queue_items_deleted=queue_items_deleted,
    )
    log_event(
        logger,
        "sales_rule_deleted",
        sales_rule_id=sales_rule_id,
        coupons_deleted=coupons_deleted,
        links_deleted=links_deleted,
        queue_items_deleted=queue_items_deleted,
    )
    return result

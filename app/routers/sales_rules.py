from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.models.sales_rule import SalesRule
from app.routers.coupon_codes import coupon_out
from app.schemas.common import PaginationMeta
from app.schemas.coupon import CouponIssueOut
from app.schemas.dispatch import EnqueueOut
from app.schemas.sales_rule import (
    SalesRuleCreateIn,
    SalesRuleDeleteOut,
    SalesRuleListOut,
    SalesRuleOut,
    SalesRuleSendIn,
    SalesRuleUpdateIn,
)
from app.services import coupon_service, sales_rule_service
from app.services.dispatch_queue import enqueue_sales_rule
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/sales-rules", tags=["sales-rules"], dependencies=[Depends(require_admin_key)])


def _sales_rule_out(sales_rule: SalesRule, counts: tuple[int, int] = (0, 0)) -> SalesRuleOut:
    issued, used = counts
    return SalesRuleOut(
        id=sales_rule.id,
        name=sales_rule.name,
        description=sales_rule.description,
        image=sales_rule.image,
        max_uses=sales_rule.max_uses,
        coupons_issued=issued,
        coupons_used=used,
        created_at=sales_rule.created_at,
        updated_at=sales_rule.updated_at,
    )


@router.get(
    "",
    response_model=SalesRuleListOut,
    summary="List sales rules",
    responses=error_responses(403, 422, 500, path="/sales-rules"),
)
def list_sales_rules(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = sales_rule_service.list_sales_rules(db, limit=limit, offset=offset)
    counts = sales_rule_service.coupon_counts(db, [row.id for row in rows])
    return SalesRuleListOut(
        items=[_sales_rule_out(row, counts.get(row.id, (0, 0))) for row in rows],
        pagination=PaginationMeta.for_page(total=total, limit=limit, offset=offset, count=len(rows)),
    )


@router.post(
    "",
    response_model=SalesRuleOut,
    summary="Create sales rule",
    responses=error_responses(403, 422, 500, path="/sales-rules"),
)
def create_sales_rule(payload: SalesRuleCreateIn, db: Session = Depends(get_db)):
    sales_rule = sales_rule_service.create_sales_rule(
        db,
        name=payload.name,
        description=payload.description,
        image=payload.image,
        max_uses=payload.max_uses,
    )
    db.commit()
    db.refresh(sales_rule)
    return _sales_rule_out(sales_rule)


@router.get(
    "/{sales_rule_id}",
    response_model=SalesRuleOut,
    summary="Get sales rule",
    responses=error_responses(403, 404, 500, resource="Sales rule", path="/sales-rules"),
)
def get_sales_rule(sales_rule_id: str, db: Session = Depends(get_db)):
    sales_rule = sales_rule_service.get_sales_rule(db, sales_rule_id)
    counts = sales_rule_service.coupon_counts(db, [sales_rule.id])
    return _sales_rule_out(sales_rule, counts.get(sales_rule.id, (0, 0)))


@router.put(
    "/{sales_rule_id}",
    response_model=SalesRuleOut,
    summary="Update sales rule",
    responses=error_responses(403, 404, 422, 500, resource="Sales rule", path="/sales-rules"),
)
def update_sales_rule(sales_rule_id: str, payload: SalesRuleUpdateIn, db: Session = Depends(get_db)):
    sales_rule = sales_rule_service.update_sales_rule(db, sales_rule_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(sales_rule)
    counts = sales_rule_service.coupon_counts(db, [sales_rule.id])
    return _sales_rule_out(sales_rule, counts.get(sales_rule.id, (0, 0)))


@router.delete(
    "/{sales_rule_id}",
    response_model=SalesRuleDeleteOut,
    summary="Delete sales rule with its coupons, links and queued items",
    responses=error_responses(403, 404, 500, resource="Sales rule", path="/sales-rules"),
)
def delete_sales_rule(sales_rule_id: str, db: Session = Depends(get_db)):
    result = sales_rule_service.delete_sales_rule(db, sales_rule_id)
    db.commit()
    return SalesRuleDeleteOut(
        sales_rule_id=result.sales_rule_id,
        coupons_deleted=result.coupons_deleted,
        links_deleted=result.links_deleted,
        queue_items_deleted=result.queue_items_deleted,
    )


@router.post(
    "/{sales_rule_id}/send",
    response_model=EnqueueOut,
    summary="Queue a sales rule for the given chat ids",
    responses=error_responses(403, 404, 422, 500, resource="Sales rule", path="/sales-rules"),
)
def send_sales_rule(sales_rule_id: str, payload: SalesRuleSendIn, db: Session = Depends(get_db)):
    result = enqueue_sales_rule(db, sales_rule_id=sales_rule_id, chat_ids=payload.user_ids)
    db.commit()
    return EnqueueOut(
        content_id=sales_rule_id,
        added_count=result.added_count,
        skipped_count=result.skipped_count,
        errors=result.errors,
    )


@router.post(
    "/{sales_rule_id}/issue",
    response_model=CouponIssueOut,
    summary="Issue and deliver coupons immediately, bypassing the queue",
    responses=error_responses(403, 404, 422, 500, resource="Sales rule", path="/sales-rules"),
)
def issue_sales_rule(
    sales_rule_id: str,
    payload: SalesRuleSendIn,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    coupons = coupon_service.issue_for_sales_rule(
        db,
        sales_rule_id=sales_rule_id,
        chat_ids=payload.user_ids,
        sender=runtime.send_capability,
    )
    db.commit()
    for coupon in coupons:
        db.refresh(coupon)
    return CouponIssueOut(
        sales_rule_id=sales_rule_id,
        issued_count=len(coupons),
        items=[coupon_out(coupon) for coupon in coupons],
    )

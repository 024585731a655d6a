from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.core.errors import CouponExhaustedError, NotFoundError
from app.models.coupon import CouponCode
from app.schemas.common import PaginationMeta
from app.schemas.coupon import (
    CouponListOut,
    CouponOut,
    CouponSalesRuleOut,
    CouponUpdateIn,
    RedemptionOut,
    UsageStatus,
)
from app.services import coupon_service, redemption_service
from app.services.redemption_service import RedemptionStatus
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/coupon-codes", tags=["coupon-codes"], dependencies=[Depends(require_admin_key)])


def coupon_out(coupon: CouponCode) -> CouponOut:
    sales_rule = coupon.sales_rule
    return CouponOut(
        id=coupon.id,
        code=coupon.code,
        chat_id=coupon.chat_id,
        sales_rule_id=coupon.sales_rule_id,
        sales_rule=(
            CouponSalesRuleOut(id=sales_rule.id, name=sales_rule.name, description=sales_rule.description)
            if sales_rule
            else None
        ),
        max_uses=coupon.max_uses,
        uses_count=coupon.uses_count,
        used_at=coupon.used_at,
        is_sent=coupon.is_sent,
        created_at=coupon.created_at,
        updated_at=coupon.updated_at,
    )


@router.get(
    "",
    response_model=CouponListOut,
    summary="List coupon codes",
    responses=error_responses(403, 422, 500, path="/coupon-codes"),
)
def list_coupon_codes(
    usage_status: UsageStatus | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    sales_rule_id: str | None = Query(default=None),
    chat_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = coupon_service.list_coupons(
        db,
        usage_status=usage_status,
        date_from=date_from,
        date_to=date_to,
        sales_rule_id=sales_rule_id,
        chat_id=chat_id,
        limit=limit,
        offset=offset,
    )
    return CouponListOut(
        items=[coupon_out(row) for row in rows],
        pagination=PaginationMeta.for_page(total=total, limit=limit, offset=offset, count=len(rows)),
    )


@router.get(
    "/lookup/{code}",
    response_model=RedemptionOut,
    summary="Look up a coupon code before confirming a use",
    responses=error_responses(403, 500, path="/coupon-codes"),
)
def lookup_coupon_code(code: str, db: Session = Depends(get_db)):
    result = redemption_service.lookup_code(db, code)
    return RedemptionOut(
        status=result.status.value,
        reason=result.reason,
        coupon=coupon_out(result.coupon) if result.coupon else None,
    )


@router.get(
    "/{coupon_id}",
    response_model=CouponOut,
    summary="Get coupon code",
    responses=error_responses(403, 404, 500, resource="Coupon code", path="/coupon-codes"),
)
def get_coupon_code(coupon_id: str, db: Session = Depends(get_db)):
    return coupon_out(coupon_service.get_coupon(db, coupon_id))


@router.put(
    "/{coupon_id}",
    response_model=CouponOut,
    summary="Edit coupon code",
    responses=error_responses(400, 403, 404, 422, 500, resource="Coupon code", path="/coupon-codes"),
)
def update_coupon_code(coupon_id: str, payload: CouponUpdateIn, db: Session = Depends(get_db)):
    coupon = coupon_service.update_coupon(
        db,
        coupon_id,
        uses_count=payload.uses_count,
        used_at=payload.used_at,
        is_sent=payload.is_sent,
    )
    db.commit()
    db.refresh(coupon)
    return coupon_out(coupon)


@router.delete(
    "/{coupon_id}",
    summary="Delete coupon code",
    responses=error_responses(403, 404, 500, resource="Coupon code", path="/coupon-codes"),
)
def delete_coupon_code(coupon_id: str, db: Session = Depends(get_db)):
    coupon_service.delete_coupon(db, coupon_id)
    db.commit()
    return {"ok": True}


@router.put(
    "/{coupon_id}/sent",
    response_model=CouponOut,
    summary="Mark coupon code as sent",
    responses=error_responses(403, 404, 500, resource="Coupon code", path="/coupon-codes"),
)
def mark_coupon_sent(coupon_id: str, db: Session = Depends(get_db)):
    coupon = coupon_service.mark_as_sent(db, coupon_id)
    db.commit()
    db.refresh(coupon)
    return coupon_out(coupon)


@router.put(
    "/{coupon_id}/used",
    response_model=RedemptionOut,
    summary="Confirm one use of a coupon code",
    responses=error_responses(403, 404, 409, 500, resource="Coupon code", path="/coupon-codes"),
)
def mark_coupon_used(
    coupon_id: str,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    result = redemption_service.confirm_use(db, coupon_id, config=runtime.config)
    if result.status == RedemptionStatus.REJECTED:
        db.rollback()
        raise NotFoundError("Coupon code not found")
    if result.status == RedemptionStatus.EXHAUSTED:
        db.rollback()
        raise CouponExhaustedError("Coupon code has no uses left")
    db.commit()
    db.refresh(result.coupon)
    return RedemptionOut(
        status=result.status.value,
        order_link=result.order_link,
        coupon=coupon_out(result.coupon),
    )

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.models.user import User
from app.schemas.common import PaginationMeta
from app.schemas.user import BotUserListOut, BotUserOut, UserDeleteIn, UserDeleteOut
from app.services import user_service

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_admin_key)])


def _user_out(user: User) -> BotUserOut:
    return BotUserOut(
        id=user.id,
        chat_id=user.chat_id,
        user_name=user.user_name,
        first_name=user.first_name,
        last_name=user.last_name,
        is_blocked=user.is_blocked,
        attention_needed=user.attention_needed,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.get(
    "",
    response_model=BotUserListOut,
    summary="List bot users",
    responses=error_responses(403, 422, 500, path="/users"),
)
def list_users(
    attention_needed: bool | None = Query(default=None),
    is_blocked: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = user_service.list_users(
        db,
        attention_needed=attention_needed,
        is_blocked=is_blocked,
        limit=limit,
        offset=offset,
    )
    return BotUserListOut(
        items=[_user_out(row) for row in rows],
        pagination=PaginationMeta.for_page(total=total, limit=limit, offset=offset, count=len(rows)),
    )


@router.post(
    "/delete",
    response_model=UserDeleteOut,
    summary="Delete users with their coupons, queued items and links",
    responses=error_responses(403, 422, 500, path="/users"),
)
def delete_users(payload: UserDeleteIn, db: Session = Depends(get_db)):
    summary = user_service.delete_users(db, payload.user_ids)
    db.commit()
    return UserDeleteOut(
        users_deleted=summary.users_deleted,
        coupons_deleted=summary.coupons_deleted,
        queue_items_deleted=summary.queue_items_deleted,
        links_deleted=summary.links_deleted,
        missing_user_ids=summary.missing_user_ids,
    )

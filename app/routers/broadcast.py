from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.schemas.dispatch import ChatIdsIn, EnqueueOut
from app.services.dispatch_queue import (
    EnqueueResult,
    enqueue_post_for_all_active_users,
    enqueue_post_for_attention_needed,
    enqueue_post_for_chat_ids,
)

router = APIRouter(prefix="/broadcast", tags=["broadcast"], dependencies=[Depends(require_admin_key)])


def _enqueue_out(post_id: str, result: EnqueueResult) -> EnqueueOut:
    return EnqueueOut(
        content_id=post_id,
        added_count=result.added_count,
        skipped_count=result.skipped_count,
        errors=result.errors,
    )


@router.post(
    "/{post_id}",
    response_model=EnqueueOut,
    summary="Queue a post for the given chat ids",
    responses=error_responses(403, 404, 422, 500, resource="Post", path="/broadcast"),
)
def broadcast_to_chat_ids(post_id: str, payload: ChatIdsIn, db: Session = Depends(get_db)):
    result = enqueue_post_for_chat_ids(db, post_id=post_id, chat_ids=payload.chat_ids)
    db.commit()
    return _enqueue_out(post_id, result)


@router.post(
    "/{post_id}/all",
    response_model=EnqueueOut,
    summary="Queue a post for every active user",
    responses=error_responses(403, 404, 500, resource="Post", path="/broadcast"),
)
def broadcast_to_all(post_id: str, db: Session = Depends(get_db)):
    result = enqueue_post_for_all_active_users(db, post_id=post_id)
    db.commit()
    return _enqueue_out(post_id, result)


@router.post(
    "/{post_id}/attention-needed",
    response_model=EnqueueOut,
    summary="Queue a post for users flagged for re-engagement",
    responses=error_responses(403, 404, 500, resource="Post", path="/broadcast"),
)
def broadcast_to_attention_needed(post_id: str, db: Session = Depends(get_db)):
    result = enqueue_post_for_attention_needed(db, post_id=post_id)
    db.commit()
    return _enqueue_out(post_id, result)

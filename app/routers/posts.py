from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.models.post import Post
from app.schemas.common import PaginationMeta
from app.schemas.post import PostCreateIn, PostListOut, PostOut

router = APIRouter(prefix="/posts", tags=["posts"], dependencies=[Depends(require_admin_key)])


def _post_out(post: Post) -> PostOut:
    return PostOut(
        id=post.id,
        description=post.description,
        image=post.image,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


@router.get(
    "",
    response_model=PostListOut,
    summary="List posts",
    responses=error_responses(403, 422, 500, path="/posts"),
)
def list_posts(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    total = int(db.execute(select(func.count(Post.id))).scalar_one())
    rows = db.execute(
        select(Post).order_by(Post.created_at.desc(), Post.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return PostListOut(
        items=[_post_out(row) for row in rows],
        pagination=PaginationMeta.for_page(total=total, limit=limit, offset=offset, count=len(rows)),
    )


@router.post(
    "",
    response_model=PostOut,
    summary="Create post",
    responses=error_responses(403, 422, 500, path="/posts"),
)
def create_post(payload: PostCreateIn, db: Session = Depends(get_db)):
    post = Post(description=payload.description, image=payload.image)
    db.add(post)
    db.commit()
    db.refresh(post)
    return _post_out(post)


@router.delete(
    "/{post_id}",
    summary="Delete post",
    responses=error_responses(403, 404, 500, resource="Post", path="/posts"),
)
def delete_post(post_id: str, db: Session = Depends(get_db)):
    # Items already queued for the post are dropped by the next drain cycle.
    post = db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    db.delete(post)
    db.commit()
    return {"ok": True}

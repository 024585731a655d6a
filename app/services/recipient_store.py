from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.user import User


def _unique(values) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        cleaned = str(value).strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def users_by_chat_ids(db: Session, chat_ids) -> dict[str, User]:
    keys = _unique(chat_ids)
    if not keys:
        return {}
    rows = db.execute(select(User).where(User.chat_id.in_(keys))).scalars().all()
    return {row.chat_id: row for row in rows}


def user_by_chat_id(db: Session, chat_id: str) -> User | None:
    return db.execute(select(User).where(User.chat_id == str(chat_id).strip())).scalar_one_or_none()


def chat_ids_by_user_ids(db: Session, user_ids) -> dict[str, str]:
    keys = _unique(user_ids)
    if not keys:
        return {}
    rows = db.execute(select(User.id, User.chat_id).where(User.id.in_(keys))).all()
    return {user_id: chat_id for user_id, chat_id in rows}


def active_chat_ids(db: Session) -> list[str]:
    stmt = select(User.chat_id).where(User.is_blocked.is_(False)).order_by(User.created_at.desc(), User.id.asc())
    return list(db.execute(stmt).scalars().all())


def attention_needed_chat_ids(db: Session) -> list[str]:
    stmt = (
        select(User.chat_id)
        .where(User.is_blocked.is_(False), User.attention_needed.is_(True))
        .order_by(User.updated_at.asc(), User.id.asc())
    )
    return list(db.execute(stmt).scalars().all())

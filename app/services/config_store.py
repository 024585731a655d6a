import threading
import time
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.configuration import Configuration


class ConfigStore:
    """Key/value configuration rows with a short in-process read cache.

    Only hits are cached; a missing path is looked up again on the next call.
    """

    def __init__(self, *, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = settings.config_cache_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _cached(self, path: str) -> str | None:
        with self._lock:
            entry = self._cache.get(path)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                self._cache.pop(path, None)
                return None
            return value

    def _remember(self, path: str, value: str) -> None:
        with self._lock:
            self._cache[path] = (value, self._clock())

    def get(self, db: Session, path: str, default: str | None = None) -> str | None:
        cached = self._cached(path)
        if cached is not None:
            return cached
        row = db.execute(select(Configuration).where(Configuration.path == path)).scalar_one_or_none()
        if row is None:
            return default
        self._remember(path, row.value)
        return row.value

    def get_many(self, db: Session, paths: list[str]) -> dict[str, str | None]:
        return {path: self.get(db, path) for path in paths}

    def set(self, db: Session, path: str, value: str) -> Configuration:
        row = db.execute(select(Configuration).where(Configuration.path == path)).scalar_one_or_none()
        if row is None:
            row = Configuration(path=path, value=value)
            db.add(row)
        else:
            row.value = value
        db.commit()
        db.refresh(row)
        self._remember(path, row.value)
        return row

    def list_all(self, db: Session) -> list[Configuration]:
        return list(db.execute(select(Configuration).order_by(Configuration.path.asc())).scalars().all())

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

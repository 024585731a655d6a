from app.models.configuration import Configuration
from app.services.config_store import ConfigStore


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_values_are_cached_until_ttl_expires(session_local):
    clock = FakeClock()
    store = ConfigStore(ttl_seconds=60, clock=clock)
    with session_local() as db:
        store.set(db, "admin_path", "https://t.me/first")

        row = db.query(Configuration).filter_by(path="admin_path").one()
        row.value = "https://t.me/second"
        db.commit()

        assert store.get(db, "admin_path") == "https://t.me/first"

        clock.now = 61
        assert store.get(db, "admin_path") == "https://t.me/second"


def test_missing_paths_are_not_cached(session_local):
    store = ConfigStore(ttl_seconds=60, clock=FakeClock())
    with session_local() as db:
        assert store.get(db, "admin_path") is None
        assert store.get(db, "admin_path", "fallback") == "fallback"

        db.add(Configuration(path="admin_path", value="https://t.me/shop"))
        db.commit()

        assert store.get(db, "admin_path") == "https://t.me/shop"


def test_set_upserts_and_lists_sorted(session_local):
    store = ConfigStore(ttl_seconds=0)
    with session_local() as db:
        store.set(db, "b_path", "2")
        store.set(db, "a_path", "1")
        store.set(db, "b_path", "3")

        rows = store.list_all(db)

        assert [(row.path, row.value) for row in rows] == [("a_path", "1"), ("b_path", "3")]
        assert store.get_many(db, ["a_path", "missing"]) == {"a_path": "1", "missing": None}


def test_clear_drops_cached_values(session_local):
    clock = FakeClock()
    store = ConfigStore(ttl_seconds=60, clock=clock)
    with session_local() as db:
        store.set(db, "admin_path", "old")
        db.query(Configuration).filter_by(path="admin_path").update({"value": "new"})
        db.commit()

        store.clear()

        assert store.get(db, "admin_path") == "new"

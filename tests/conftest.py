import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import app.models  # noqa: F401
from app.core.config import settings
from app.core.deps import get_db
from app.db.base import Base
from app.main import app
from app.services.config_store import ConfigStore
from app.services.runtime import build_runtime, set_runtime
from app.services.send_capability import StubSendCapability


@pytest.fixture()
def session_local():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def file_session_local(tmp_path):
    """File-backed database; each session gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'botcrm.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def stub_sender():
    return StubSendCapability()


@pytest.fixture()
def admin_sender():
    return StubSendCapability(name="admin_stub")


@pytest.fixture()
def runtime(session_local, stub_sender, admin_sender):
    current = build_runtime(
        session_local,
        send_capability=stub_sender,
        admin_capability=admin_sender,
        config=ConfigStore(ttl_seconds=0),
    )
    set_runtime(current)
    yield current
    set_runtime(None)


@pytest.fixture()
def test_context(session_local, runtime):
    original_admin_key = settings.admin_api_key
    settings.admin_api_key = None

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    settings.admin_api_key = original_admin_key

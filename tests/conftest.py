"""
Shared pytest fixtures: in-memory SQLite, FastAPI TestClient, local stores.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from expense_tracker.database import Base, get_db, make_engine  # noqa: E402
from expense_tracker.local import EntityResolver, MemoryBackend, open_store  # noqa: E402
from expense_tracker.main import app  # noqa: E402
from expense_tracker.models import UserModel  # noqa: E402

# StaticPool ensures all connections share the same in-memory database
_ENGINE = make_engine("sqlite:///:memory:", poolclass=StaticPool)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make(user_id="user-1", opted_in=False, active=True):
        user = UserModel(id=user_id, community_opted_in=opted_in, is_active=active)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def store():
    return open_store("user-1", MemoryBackend())


@pytest.fixture()
def resolver(store):
    return EntityResolver(store)

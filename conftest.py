import os
from datetime import datetime, timedelta

# Set testing environment before any project module reads settings
os.environ["LIBRARY_DATABASE_URL"] = "sqlite:///./test_library.db"
os.environ["LIBRARY_STORE_BACKEND"] = "sql"
os.environ["LIBRARY_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["LIBRARY_ADMIN_EMAIL"] = "admin@test.edu"
os.environ["LIBRARY_ADMIN_PASSWORD"] = "admin@1234"
os.environ["LIBRARY_SEED_DEMO_BOOKS"] = "false"

import pytest

import models  # noqa: F401
from database import Base, SessionLocal, engine
from models import ApprovalStatus, Role
from store import JsonStore, SqlStore

T0 = datetime(2024, 1, 1, 9, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    """Fresh tables and a session for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(params=["sql", "json"])
def backend(request):
    return request.param


@pytest.fixture
def store(backend, request, tmp_path):
    if backend == "sql":
        return SqlStore(request.getfixturevalue("db"))
    return JsonStore(str(tmp_path / "data"))


@pytest.fixture
def sibling_store(backend, store, tmp_path):
    """A second, independent handle onto the same data (another 'tab')."""
    if backend == "sql":
        session = SessionLocal()
        yield SqlStore(session)
        session.close()
    else:
        yield JsonStore(str(tmp_path / "data"))


@pytest.fixture
def make_user(store):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "id": f"u{n}",
            "name": f"Student {n}",
            "email": f"student{n}@test.edu",
            "usn": f"1CK23EC{n:03d}",
            "phone": "9876543210",
            "hashed_password": "not-a-real-hash",
            "role": Role.STUDENT.value,
            "approval_status": ApprovalStatus.APPROVED.value,
        }
        fields.update(overrides)
        return store.create("users", fields)

    return _make


@pytest.fixture
def make_book(store):
    def _make(**overrides):
        fields = {
            "title": "The Great Gatsby",
            "author": "F. Scott Fitzgerald",
            "isbn": "978-0-7432-7356-5",
            "category": "Classic Literature",
            "quantity": 3,
        }
        fields.update(overrides)
        return store.create("books", fields)

    return _make

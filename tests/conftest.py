from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from canteen.auth import create_token, hash_password
from canteen.config import settings
from canteen.db import Base, get_db
from canteen.main import app
from canteen.models import MenuItem, Queue, User

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=test_engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture()
def client(db, tmp_path, monkeypatch):
    def _get_db():
        s = TestSession()
        try:
            yield s
        finally:
            s.close()

    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(name: str = "Student", role: str = "student", password: str = "secret123") -> User:
        counter["n"] += 1
        u = User(
            name=f"{name} {counter['n']}",
            email=f"{role}{counter['n']}@college.com",
            password_hash=hash_password(password),
            role=role,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u

    return _make


@pytest.fixture()
def make_item(db):
    def _make(name="Samosa", price=20.0, category="Snacks", service_type="canteen", available=True) -> MenuItem:
        item = MenuItem(
            name=name,
            description=f"{name} from the counter",
            price=price,
            category=category,
            service_type=service_type,
            available=available,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture()
def make_queue(db):
    def _make(name="Canteen Queue", service_type="canteen", status="active", max_capacity=100, wait=15) -> Queue:
        q = Queue(
            name=name,
            service_type=service_type,
            status=status,
            current_number=0,
            max_capacity=max_capacity,
            estimated_wait_time=wait,
        )
        db.add(q)
        db.commit()
        db.refresh(q)
        return q

    return _make


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture()
def headers():
    return bearer

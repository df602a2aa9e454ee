# canteen/db.py
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings
from .errors import NotFound

DATABASE_URL = settings.database_url

# SQLite connections are shared across the threadpool FastAPI runs sync routes in
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_or_404(db, model, ident, label: str):
    obj = db.get(model, ident)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj

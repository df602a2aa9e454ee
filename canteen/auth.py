# canteen/auth.py
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .db import get_db
from .errors import Forbidden, Unauthorized
from .models import User

pwd = CryptContext(schemes=["argon2"], deprecated="auto")


def _jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "dev-secret-change-me")


def _jwt_alg() -> str:
    return os.getenv("JWT_ALG", "HS256")


def _jwt_expire_minutes() -> int:
    # default 24h
    raw = os.getenv("JWT_EXPIRE_MIN", "1440")
    try:
        return int(raw)
    except ValueError:
        return 1440


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd.verify(p, h)


def create_token(user: User) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=_jwt_expire_minutes())
    payload = {"sub": str(user.id), "role": user.role, "exp": exp}
    return jwt.encode(payload, _jwt_secret(), algorithm=_jwt_alg())


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the claims of a valid token, or None when it is malformed, forged or expired."""
    try:
        data = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_alg()])
        return {"user_id": int(data["sub"]), "role": data.get("role", "student")}
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def user_from_token(db: Session, token: str | None) -> User:
    if not token:
        raise Unauthorized("Access token required")
    claims = decode_token(token)
    if not claims:
        raise Unauthorized("Invalid or expired token")
    u = db.get(User, claims["user_id"])
    if not u:
        raise Unauthorized("Invalid or expired token")
    return u


def require_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Access token required")
    token = authorization.split(" ", 1)[1].strip()
    return user_from_token(db, token)


def require_admin(user: User = Depends(require_user)) -> User:
    # role is read from the stored user so a demotion takes effect before token expiry
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user

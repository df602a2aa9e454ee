# canteen/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import create_token, hash_password, require_user, verify_password
from ..db import get_db
from ..errors import StateConflict, Unauthorized
from ..models import User
from ..schemas import LoginIn, ProfileIn, SignupIn, UserOut

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_payload(u: User) -> dict:
    return {"token": create_token(u), "user": UserOut.model_validate(u)}


@router.post("/register", status_code=201)
def register(payload: SignupIn, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.scalar(select(User).where(User.email == email)):
        raise StateConflict("Email already exists")

    u = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="student",
        student_id=payload.student_id,
        department=payload.department,
        phone=payload.phone,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return _session_payload(u)


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    u = db.scalar(select(User).where(User.email == payload.email.lower()))
    if not u or not verify_password(payload.password, u.password_hash):
        raise Unauthorized("Bad credentials")
    return _session_payload(u)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(require_user)):
    return user


@router.put("/profile", response_model=UserOut)
def update_profile(payload: ProfileIn, user: User = Depends(require_user), db: Session = Depends(get_db)):
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(user, k, v)
    db.commit()
    db.refresh(user)
    return user

# canteen/routes/xerox.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from starlette.concurrency import run_in_threadpool

from ..auth import require_admin, require_user
from ..config import settings
from ..db import get_db, get_or_404
from ..errors import NotFound
from ..models import User, XeroxOrder
from ..ordering import orders as order_rules
from ..ordering import reports
from ..ordering import xerox as engine
from ..realtime import ADMINS_TOPIC, notifier, topic_for
from ..schemas import AdminXeroxOrderOut, StatusIn, XeroxOptionsIn, XeroxOrderOut
from ..uploads import discard, receive_xerox_form

router = APIRouter(prefix="/api/xerox", tags=["xerox"])


def _load(db: Session, order_id: int) -> XeroxOrder:
    return get_or_404(db, XeroxOrder, order_id, "Xerox order")


def _options(fields: Dict[str, str]) -> XeroxOptionsIn:
    try:
        return XeroxOptionsIn.model_validate(fields)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e


def _abandon(db: Session, stored: List[Dict[str, Any]]) -> None:
    db.rollback()
    discard(stored)


@router.post("", status_code=201)
async def place_xerox_order(
    request: Request,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Multipart form: one to five ``files`` parts plus ``copies``,
    ``payment_method``, ``paper_size``, ``color_mode``, ``binding`` and
    ``special_instructions``.
    """
    fields, stored = await receive_xerox_form(request, settings.upload_dir)
    try:
        options = _options(fields)
        xo = await run_in_threadpool(engine.place_xerox_order, db, user, stored, **options.model_dump())
    except Exception:
        await run_in_threadpool(_abandon, db, stored)
        raise

    out = XeroxOrderOut.model_validate(xo)
    background.add_task(notifier.emit, ADMINS_TOPIC, "new-xerox-order", {"xerox_order": out})
    return {"message": "Xerox order placed successfully", "xerox_order": out}


@router.get("/quote")
def quote(
    files: int = Query(..., ge=1, le=5),
    copies: int = Query(1, ge=1, le=100),
    paper_size: str = "A4",
    color_mode: str = "black",
    binding: str = "none",
    _user: User = Depends(require_user),
):
    return engine.quote(files, copies, paper_size, color_mode, binding)


@router.get("/my-orders", response_model=List[XeroxOrderOut])
def my_orders(user: User = Depends(require_user), db: Session = Depends(get_db)):
    q = (
        select(XeroxOrder)
        .where(XeroxOrder.user_id == user.id)
        .options(selectinload(XeroxOrder.files))
        .order_by(XeroxOrder.created_at.desc(), XeroxOrder.id.desc())
    )
    return db.scalars(q).all()


@router.get("/admin/all", response_model=List[AdminXeroxOrderOut])
def all_orders(
    status: Optional[str] = None,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = select(XeroxOrder).options(selectinload(XeroxOrder.files), selectinload(XeroxOrder.user))
    if status:
        q = q.where(XeroxOrder.status == status)
    return db.scalars(q.order_by(XeroxOrder.created_at.desc(), XeroxOrder.id.desc())).all()


@router.get("/stats/summary")
def stats(_admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return reports.xerox_stats(db)


@router.get("/{order_id}", response_model=XeroxOrderOut)
def get_xerox_order(order_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    xo = _load(db, order_id)
    order_rules.check_access(xo, user)
    return xo


@router.get("/{order_id}/files/{filename}")
def download_file(
    order_id: int,
    filename: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    xo = _load(db, order_id)
    order_rules.check_access(xo, user)

    # only names recorded on this order are served, never a caller-built path
    stored = next((f for f in xo.files if f.filename == filename), None)
    if stored is None or not Path(stored.path).is_file():
        raise NotFound("File not found")
    return FileResponse(stored.path, media_type=stored.mimetype, filename=stored.original_name)


@router.post("/{order_id}/cancel")
def cancel_xerox_order(
    order_id: int,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    xo = engine.cancel_xerox_order(db, _load(db, order_id), user)
    background.add_task(
        notifier.emit_many,
        [topic_for("xerox", xo.id), ADMINS_TOPIC],
        "xerox-order-updated",
        {"order_id": xo.id, "status": xo.status},
    )
    return {"message": "Xerox order cancelled successfully", "xerox_order": XeroxOrderOut.model_validate(xo)}


@router.put("/{order_id}/status")
def update_status(
    order_id: int,
    payload: StatusIn,
    background: BackgroundTasks,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    xo = engine.update_xerox_status(db, _load(db, order_id), payload.status)

    topics = [topic_for("xerox", xo.id), ADMINS_TOPIC]
    background.add_task(
        notifier.emit_many, topics, "xerox-order-updated", {"order_id": xo.id, "status": xo.status}
    )
    if xo.status == "ready":
        ready = {"order_id": xo.id, "message": order_rules.ready_message("xerox")}
        background.add_task(notifier.emit_many, topics, "xerox-order-ready", ready)

    return {"message": "Xerox order status updated successfully", "xerox_order": XeroxOrderOut.model_validate(xo)}

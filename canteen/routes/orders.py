# canteen/routes/orders.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..auth import require_admin, require_user
from ..db import get_db, get_or_404
from ..models import Order, User
from ..ordering import orders as engine
from ..ordering import qr, reports
from ..ordering.cart import build_summary
from ..realtime import ADMINS_TOPIC, notifier, topic_for
from ..schemas import AdminOrderOut, OrderIn, OrderOut, ServiceType, StatusIn

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _load(db: Session, order_id: int) -> Order:
    return get_or_404(db, Order, order_id, "Order")


@router.post("", status_code=201)
def place_order(
    payload: OrderIn,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    order = engine.place_order(
        db,
        user,
        payload.items,
        payment_method=payload.payment_method,
        service_type=payload.service_type,
        special_instructions=payload.special_instructions,
    )
    out = OrderOut.model_validate(order)
    qr_data = engine.qr_payload(order) if order.service_type == "canteen" else None
    summary, _total = build_summary(order.items)

    background.add_task(notifier.emit, ADMINS_TOPIC, "new-order", {"order": out})

    return {
        "message": "Order placed successfully",
        "order": out,
        "summary": summary,
        "qr_code_data": qr_data,
    }


@router.get("/my-orders", response_model=List[OrderOut])
def my_orders(
    service_type: Optional[ServiceType] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    q = select(Order).where(Order.user_id == user.id).options(selectinload(Order.items))
    if service_type:
        q = q.where(Order.service_type == service_type)
    return db.scalars(q.order_by(Order.created_at.desc(), Order.id.desc())).all()


@router.get("/admin/all", response_model=List[AdminOrderOut])
def all_orders(
    service_type: Optional[ServiceType] = None,
    status: Optional[str] = None,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = select(Order).options(selectinload(Order.items), selectinload(Order.user))
    if service_type:
        q = q.where(Order.service_type == service_type)
    if status:
        q = q.where(Order.status == status)
    return db.scalars(q.order_by(Order.created_at.desc(), Order.id.desc())).all()


@router.get("/admin/stats")
def order_stats(_admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return reports.order_stats(db)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    order = _load(db, order_id)
    engine.check_access(order, user)
    return order


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    order = engine.cancel_order(db, _load(db, order_id), user)

    event = {"order_id": order.id, "status": order.status}
    background.add_task(
        notifier.emit_many, [topic_for("order", order.id), ADMINS_TOPIC], "order-updated", event
    )
    return {"message": "Order cancelled successfully", "order": OrderOut.model_validate(order)}


@router.put("/{order_id}/status")
def update_status(
    order_id: int,
    payload: StatusIn,
    background: BackgroundTasks,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    order = engine.update_status(db, _load(db, order_id), payload.status)

    topics = [topic_for("order", order.id), ADMINS_TOPIC]
    background.add_task(
        notifier.emit_many, topics, "order-updated", {"order_id": order.id, "status": order.status}
    )
    if order.status == "ready":
        ready = {
            "order_id": order.id,
            "message": engine.ready_message(order.service_type),
            "service_type": order.service_type,
        }
        background.add_task(notifier.emit_many, topics, "order-ready", ready)

    return {"message": "Order status updated successfully", "order": OrderOut.model_validate(order)}


@router.get("/{order_id}/qr")
def order_qr(order_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    order = _load(db, order_id)
    engine.check_access(order, user)
    data = engine.qr_payload(order)
    return {"qr_code": qr.data_url(data), "order_data": data}

# canteen/routes/admin.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..db import get_db, get_or_404
from ..errors import StateConflict
from ..models import MenuItem, Order, Queue, User, XeroxOrder
from ..ordering import queueing, reports
from ..realtime import notifier, topic_for
from ..schemas import (
    AdminOrderOut,
    AdminXeroxOrderOut,
    MenuItemIn,
    MenuItemOut,
    MenuItemUpdate,
    QueueCustomerOut,
    QueueIn,
    QueueOut,
    RoleIn,
    ServiceType,
    StatusIn,
    UserOut,
)
from .queue import queue_updated_event

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return {"dashboard_stats": reports.dashboard(db)}


# -------------------
# Menu management
# -------------------
@router.post("/menu", status_code=201)
def add_menu_item(payload: MenuItemIn, db: Session = Depends(get_db)):
    item = MenuItem(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return {"message": "Menu item added successfully", "menu_item": MenuItemOut.model_validate(item)}


@router.put("/menu/{item_id}")
def update_menu_item(item_id: int, payload: MenuItemUpdate, db: Session = Depends(get_db)):
    item = get_or_404(db, MenuItem, item_id, "Menu item")
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(item, k, v)
    db.commit()
    db.refresh(item)
    return {"message": "Menu item updated successfully", "menu_item": MenuItemOut.model_validate(item)}


@router.delete("/menu/{item_id}")
def delete_menu_item(item_id: int, db: Session = Depends(get_db)):
    item = get_or_404(db, MenuItem, item_id, "Menu item")
    db.delete(item)
    db.commit()
    return {"message": "Menu item deleted successfully"}


# -------------------
# Queue management
# -------------------
@router.get("/queues", response_model=List[QueueOut])
def list_queues(db: Session = Depends(get_db)):
    return db.scalars(select(Queue).order_by(Queue.id)).all()


@router.post("/queues", status_code=201, response_model=QueueOut)
def create_queue(payload: QueueIn, db: Session = Depends(get_db)):
    queue = Queue(**payload.model_dump(), current_number=0, status="active")
    db.add(queue)
    db.commit()
    db.refresh(queue)
    return queue


@router.put("/queues/{queue_id}/status")
def update_queue_status(
    queue_id: int,
    payload: StatusIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    queueing.set_status(queue, payload.status)
    db.commit()
    db.refresh(queue)

    background.add_task(
        notifier.emit,
        topic_for("queue", queue.id),
        "queue-status-updated",
        {"queue_id": queue.id, "status": queue.status},
    )
    return {"message": "Queue status updated successfully", "queue": QueueOut.model_validate(queue)}


@router.post("/queues/{queue_id}/call-next")
def call_next(queue_id: int, background: BackgroundTasks, db: Session = Depends(get_db)):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    customer = queueing.call_next(queue)
    if customer is None:
        raise StateConflict("No customers in queue")
    db.commit()
    db.refresh(queue)

    out = QueueCustomerOut.model_validate(customer)
    background.add_task(
        notifier.emit, topic_for("queue", queue.id), "customer-called", {"queue_id": queue.id, "customer": out}
    )
    return {"message": "Next customer called", "customer": out}


@router.post("/queues/{queue_id}/customers/{customer_id}/serve")
def serve_customer(queue_id: int, customer_id: int, background: BackgroundTasks, db: Session = Depends(get_db)):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    customer = queueing.serve(queue, customer_id)
    db.commit()
    db.refresh(queue)

    background.add_task(notifier.emit, topic_for("queue", queue.id), "queue-updated", queue_updated_event(queue))
    return {"message": "Customer served", "customer": QueueCustomerOut.model_validate(customer)}


# -------------------
# Reports
# -------------------
@router.get("/reports/daily")
def daily_report(
    date: Optional[dt.date] = None,
    service_type: Optional[ServiceType] = None,
    db: Session = Depends(get_db),
):
    report = reports.daily_report(db, date, service_type)
    report["orders"] = [AdminOrderOut.model_validate(o) for o in report["orders"]]
    report["xerox_orders"] = [AdminXeroxOrderOut.model_validate(x) for x in report["xerox_orders"]]
    return report


# -------------------
# Users
# -------------------
@router.get("/users")
def list_users(db: Session = Depends(get_db)):
    order_counts = dict(db.execute(select(Order.user_id, func.count()).group_by(Order.user_id)).all())
    xerox_counts = dict(db.execute(select(XeroxOrder.user_id, func.count()).group_by(XeroxOrder.user_id)).all())

    out = []
    for u in db.scalars(select(User).order_by(User.id)):
        row = UserOut.model_validate(u).model_dump()
        row["order_count"] = order_counts.get(u.id, 0)
        row["xerox_order_count"] = xerox_counts.get(u.id, 0)
        out.append(row)
    return {"users": out}


@router.put("/users/{user_id}/role")
def update_role(user_id: int, payload: RoleIn, db: Session = Depends(get_db)):
    u = get_or_404(db, User, user_id, "User")
    u.role = payload.role
    db.commit()
    db.refresh(u)
    return {"message": "User role updated successfully", "user": UserOut.model_validate(u)}

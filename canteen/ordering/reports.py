# canteen/ordering/reports.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from ..models import Order, Queue, QueueCustomer, User, XeroxOrder


def _count(db: Session, model, *where) -> int:
    return db.scalar(select(func.count()).select_from(model).where(*where)) or 0


def _grouped(db: Session, column, *where) -> Dict[str, int]:
    rows = db.execute(select(column, func.count()).where(*where).group_by(column)).all()
    return {str(k): n for k, n in rows}


def _revenue(db: Session, column, *where) -> float:
    model = column.class_
    total = db.scalar(select(func.sum(column)).where(model.status == "completed", *where))
    return round(float(total or 0.0), 2)


def _start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def order_stats(db: Session) -> Dict[str, Any]:
    return {
        "total_orders": _count(db, Order),
        "pending_orders": _count(db, Order, Order.status == "pending"),
        "completed_orders": _count(db, Order, Order.status == "completed"),
        "total_revenue": _revenue(db, Order.total),
        "orders_by_status": _grouped(db, Order.status),
        "orders_by_service_type": _grouped(db, Order.service_type),
    }


def xerox_stats(db: Session) -> Dict[str, Any]:
    return {
        "total_orders": _count(db, XeroxOrder),
        "pending_orders": _count(db, XeroxOrder, XeroxOrder.status == "pending"),
        "completed_orders": _count(db, XeroxOrder, XeroxOrder.status == "completed"),
        "total_revenue": _revenue(db, XeroxOrder.total_price),
        "orders_by_status": _grouped(db, XeroxOrder.status),
        "orders_by_paper_size": _grouped(db, XeroxOrder.paper_size),
        "orders_by_color_mode": _grouped(db, XeroxOrder.color_mode),
    }


def dashboard(db: Session, today: Optional[date] = None) -> Dict[str, Any]:
    start = _start_of_day(today or datetime.utcnow().date())

    return {
        "orders": {
            "total": _count(db, Order),
            "today": _count(db, Order, Order.created_at >= start),
            "by_service_type": _grouped(db, Order.service_type),
            "by_status": _grouped(db, Order.status),
            "total_revenue": _revenue(db, Order.total),
        },
        "xerox_orders": {
            "total": _count(db, XeroxOrder),
            "today": _count(db, XeroxOrder, XeroxOrder.created_at >= start),
            "by_status": _grouped(db, XeroxOrder.status),
            "total_revenue": _revenue(db, XeroxOrder.total_price),
        },
        "queues": {
            "total": _count(db, Queue),
            "active": _count(db, Queue, Queue.status == "active"),
            "by_service_type": _grouped(db, Queue.service_type),
            "total_customers": _count(db, QueueCustomer),
        },
        "users": {
            "total": _count(db, User),
            "students": _count(db, User, User.role == "student"),
            "admins": _count(db, User, User.role == "admin"),
        },
    }


def daily_report(db: Session, day: Optional[date] = None, service_type: Optional[str] = None) -> Dict[str, Any]:
    """Orders and xerox orders created on ``day`` plus revenue from the completed ones."""
    day = day or datetime.utcnow().date()
    start = _start_of_day(day)
    end = start + timedelta(days=1)

    order_where = [Order.created_at >= start, Order.created_at < end]
    if service_type:
        order_where.append(Order.service_type == service_type)
    xerox_where = [XeroxOrder.created_at >= start, XeroxOrder.created_at < end]

    orders = db.scalars(
        select(Order)
        .where(*order_where)
        .options(selectinload(Order.items), selectinload(Order.user))
        .order_by(Order.created_at.desc())
    ).all()
    xerox_orders = db.scalars(
        select(XeroxOrder)
        .where(*xerox_where)
        .options(selectinload(XeroxOrder.files), selectinload(XeroxOrder.user))
        .order_by(XeroxOrder.created_at.desc())
    ).all()

    revenue = _revenue(db, Order.total, *order_where) + _revenue(db, XeroxOrder.total_price, *xerox_where)

    return {
        "date": day.isoformat(),
        "orders": orders,
        "xerox_orders": xerox_orders,
        "total_revenue": round(revenue, 2),
        "order_count": len(orders),
        "xerox_order_count": len(xerox_orders),
    }

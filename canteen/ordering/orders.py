# canteen/ordering/orders.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import Forbidden, StateConflict, ValidationFailed
from ..models import (
    ORDER_STATUSES,
    PAYMENT_METHODS,
    SERVICE_TYPES,
    MenuItem,
    Order,
    OrderItem,
    User,
)
from .cart import cart_total, item_summary, line_total

log = logging.getLogger(__name__)

# status -> statuses an admin may move an order to
ORDER_TRANSITIONS: Mapping[str, Set[str]] = {
    "pending": {"preparing", "cancelled"},
    "preparing": {"ready", "cancelled"},
    "ready": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


def check_access(record, actor: User) -> None:
    """Orders and xerox orders are readable/cancellable by their owner or an admin."""
    if record.user_id != actor.id and not actor.is_admin:
        raise Forbidden("Access denied")


def advance(record, status: str, statuses: Iterable[str], transitions: Mapping[str, Set[str]]) -> None:
    if status not in statuses:
        raise ValidationFailed(f"Invalid status: {status}")
    if status not in transitions.get(record.status, set()):
        raise StateConflict(f"Cannot change status from {record.status} to {status}")
    record.status = status
    record.updated_at = datetime.utcnow()


def cancel(record, actor: User) -> None:
    check_access(record, actor)
    if record.status != "pending":
        raise StateConflict("Order cannot be cancelled")
    record.status = "cancelled"
    record.updated_at = datetime.utcnow()


# -------------------
# Canteen orders
# -------------------
def place_order(
    db: Session,
    user: User,
    lines: List[Any],
    payment_method: str,
    service_type: str = "canteen",
    special_instructions: Optional[str] = None,
) -> Order:
    """
    Price a cart against the current menu and persist it as a pending order.

    Every line is validated before anything is written, so a single bad line
    rejects the whole cart. Client-sent prices are never read.
    """
    if not lines:
        raise ValidationFailed("Order must contain at least one item")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailed(f"Invalid payment method: {payment_method}")
    if service_type not in SERVICE_TYPES:
        raise ValidationFailed(f"Invalid service type: {service_type}")

    ids = {int(line.item_id) for line in lines}
    menu = {m.id: m for m in db.scalars(select(MenuItem).where(MenuItem.id.in_(ids)))}

    order_items: List[OrderItem] = []
    for line in lines:
        qty = int(line.quantity)
        if qty < 1:
            raise ValidationFailed("Quantity must be at least 1")
        item = menu.get(int(line.item_id))
        if item is None:
            raise ValidationFailed(f"Menu item {line.item_id} not found")
        if not item.available:
            raise ValidationFailed(f"Menu item {item.name} is not available")
        if item.service_type != service_type:
            raise ValidationFailed(f"Menu item {item.name} is not available for {service_type} service")

        order_items.append(
            OrderItem(
                menu_item_id=item.id,
                name=item.name,
                price=item.price,
                quantity=qty,
                total=line_total(item.price, qty),
            )
        )

    order = Order(
        user_id=user.id,
        items=order_items,
        total=cart_total(order_items),
        status="pending",
        payment_status="pending",
        payment_method=payment_method,
        service_type=service_type,
        special_instructions=(special_instructions or "").strip() or None,
    )
    user.orders.append(order)

    db.add(order)
    db.commit()
    db.refresh(order)

    log.info("order %s placed by user %s total=%.2f", order.id, user.id, order.total)
    return order


def cancel_order(db: Session, order: Order, actor: User) -> Order:
    cancel(order, actor)
    db.commit()
    db.refresh(order)
    return order


def update_status(db: Session, order: Order, status: str) -> Order:
    advance(order, status, ORDER_STATUSES, ORDER_TRANSITIONS)
    db.commit()
    db.refresh(order)
    return order


def qr_payload(order: Order) -> Dict[str, Any]:
    if order.service_type != "canteen":
        raise ValidationFailed("QR code is only available for canteen orders")
    return {
        "order_id": order.id,
        "user_id": order.user_id,
        "total": order.total,
        "timestamp": order.created_at.isoformat() if order.created_at else None,
        "items": item_summary(order.items),
    }


def ready_message(service_type: str) -> str:
    if service_type == "canteen":
        return "Your canteen order is ready for collection!"
    return "Your xerox order is ready for collection!"

# canteen/ordering/queueing.py
"""
Queue state engine.

Positions are compacted: a customer's position is their 1-based place in the
queue's list, and ``current_number`` always equals the length of that list.
Joining appends at ``current_number + 1``; leaving removes the entry, then
re-indexes everyone left and resets ``current_number``. Served and called
entries stay in the list until their owner leaves.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..errors import NotFound, StateConflict, ValidationFailed
from ..models import QUEUE_STATUSES, Queue, QueueCustomer, User

ACTIVE_CUSTOMER_STATUSES = ("waiting", "called")

# queue status -> statuses it may move to
QUEUE_TRANSITIONS = {
    "active": {"paused", "closed"},
    "paused": {"active", "closed"},
    "closed": set(),
}


def _touch(queue: Queue) -> None:
    # dirties the parent row so its version column is checked on flush
    queue.updated_at = datetime.utcnow()


def entry_for(queue: Queue, user_id: int) -> Optional[QueueCustomer]:
    """The user's active entry, falling back to their latest finished one."""
    latest = None
    for c in queue.customers:
        if c.user_id != user_id:
            continue
        if c.status in ACTIVE_CUSTOMER_STATUSES:
            return c
        latest = c
    return latest


def join(queue: Queue, user: User) -> int:
    if queue.status != "active":
        raise StateConflict("Queue is not active")

    existing = entry_for(queue, user.id)
    if existing is not None and existing.status in ACTIVE_CUSTOMER_STATUSES:
        raise StateConflict("Already in queue")

    if queue.max_capacity is not None and queue.queue_length >= queue.max_capacity:
        raise StateConflict("Queue is full")

    position = (queue.current_number or 0) + 1
    queue.current_number = position
    queue.customers.append(
        QueueCustomer(
            user_id=user.id,
            name=user.name,
            position=position,
            joined_at=datetime.utcnow(),
            status="waiting",
        )
    )
    _touch(queue)
    return position


def leave(queue: Queue, user_id: int) -> bool:
    """Drop the user's entry and compact positions. Absent user is a no-op."""
    entry = entry_for(queue, user_id)
    if entry is None:
        return False

    queue.customers.remove(entry)
    for index, c in enumerate(queue.customers, start=1):
        c.position = index
    queue.current_number = len(queue.customers)
    _touch(queue)
    return True


def call_next(queue: Queue) -> Optional[QueueCustomer]:
    for c in queue.customers:
        if c.status == "waiting":
            c.status = "called"
            _touch(queue)
            return c
    return None


def serve(queue: Queue, customer_id: int) -> QueueCustomer:
    for c in queue.customers:
        if c.id == customer_id:
            if c.status != "called":
                raise StateConflict(f"Customer is {c.status}, only called customers can be served")
            c.status = "served"
            _touch(queue)
            return c
    raise NotFound("Customer not in queue")


def set_status(queue: Queue, status: str) -> None:
    if status not in QUEUE_STATUSES:
        raise ValidationFailed(f"Invalid queue status: {status}")
    if status not in QUEUE_TRANSITIONS.get(queue.status, set()):
        raise StateConflict(f"Queue cannot move from {queue.status} to {status}")
    queue.status = status
    _touch(queue)

# canteen/routes/queue.py
from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import require_user
from ..db import get_db, get_or_404
from ..errors import NotFound
from ..models import Queue, QueueCustomer, QueueVisit, User
from ..ordering import queueing
from ..realtime import notifier, topic_for
from ..schemas import QueueCustomerOut, QueueOut, QueueSummaryOut

router = APIRouter(prefix="/api/queue", tags=["queue"])


def queue_updated_event(queue: Queue) -> dict:
    return {
        "queue_id": queue.id,
        "customers": [QueueCustomerOut.model_validate(c) for c in queue.customers],
        "current_number": queue.current_number,
        "queue_length": queue.queue_length,
    }


@router.get("", response_model=List[QueueSummaryOut])
def list_queues(_user: User = Depends(require_user), db: Session = Depends(get_db)):
    return db.scalars(select(Queue).where(Queue.status != "closed").order_by(Queue.id)).all()


@router.get("/user/active")
def active_queues(user: User = Depends(require_user), db: Session = Depends(get_db)):
    q = (
        select(Queue)
        .join(QueueCustomer)
        .where(
            QueueCustomer.user_id == user.id,
            QueueCustomer.status.in_(queueing.ACTIVE_CUSTOMER_STATUSES),
        )
        .distinct()
        .order_by(Queue.id)
    )
    out = []
    for queue in db.scalars(q):
        entry = queueing.entry_for(queue, user.id)
        out.append(
            {
                "queue_id": queue.id,
                "queue_name": queue.name,
                "service_type": queue.service_type,
                "position": entry.position,
                "status": entry.status,
                "estimated_wait_time": queue.current_wait_time,
            }
        )
    return {"active_queues": out}


@router.get("/{queue_id}", response_model=QueueOut)
def get_queue(queue_id: int, _user: User = Depends(require_user), db: Session = Depends(get_db)):
    return get_or_404(db, Queue, queue_id, "Queue")


@router.post("/{queue_id}/join")
def join_queue(
    queue_id: int,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    position = queueing.join(queue, user)
    user.queue_visits.append(QueueVisit(queue_id=queue.id, position=position, joined_at=datetime.utcnow()))
    db.commit()
    db.refresh(queue)

    background.add_task(notifier.emit, topic_for("queue", queue.id), "queue-updated", queue_updated_event(queue))
    return {
        "message": "Successfully joined queue",
        "position": position,
        "estimated_wait_time": queue.current_wait_time,
    }


@router.post("/{queue_id}/leave")
def leave_queue(
    queue_id: int,
    background: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    if queueing.leave(queue, user.id):
        visit = next(
            (v for v in reversed(user.queue_visits) if v.queue_id == queue.id and v.left_at is None),
            None,
        )
        if visit is not None:
            visit.left_at = datetime.utcnow()
        db.commit()
        db.refresh(queue)
        background.add_task(
            notifier.emit, topic_for("queue", queue.id), "queue-updated", queue_updated_event(queue)
        )
    return {"message": "Successfully left queue"}


@router.get("/{queue_id}/position")
def my_position(queue_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    queue = get_or_404(db, Queue, queue_id, "Queue")
    entry = queueing.entry_for(queue, user.id)
    if entry is None:
        raise NotFound("Not in queue")
    return {
        "position": entry.position,
        "status": entry.status,
        "estimated_wait_time": queue.current_wait_time,
    }

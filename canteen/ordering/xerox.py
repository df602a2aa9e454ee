# canteen/ordering/xerox.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models import (
    BINDINGS,
    COLOR_MODES,
    PAPER_SIZES,
    PAYMENT_METHODS,
    XEROX_STATUSES,
    User,
    XeroxFile,
    XeroxOrder,
)
from .orders import advance, cancel

log = logging.getLogger(__name__)

BASE_PRICE = 2
A3_MULTIPLIER = 1.5
COLOR_MULTIPLIER = 2
BINDING_SURCHARGE = {"none": 0, "staples": 5, "spiral": 15, "hardcover": 25}

XEROX_TRANSITIONS: Mapping[str, Set[str]] = {
    "pending": {"processing", "cancelled"},
    "processing": {"ready", "cancelled"},
    "ready": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


def _check_options(copies: int, paper_size: str, color_mode: str, binding: str) -> None:
    if not 1 <= int(copies) <= 100:
        raise ValidationFailed("Copies must be between 1 and 100")
    if paper_size not in PAPER_SIZES:
        raise ValidationFailed(f"Invalid paper size: {paper_size}")
    if color_mode not in COLOR_MODES:
        raise ValidationFailed(f"Invalid color mode: {color_mode}")
    if binding not in BINDINGS:
        raise ValidationFailed(f"Invalid binding: {binding}")


def unit_price(paper_size: str, color_mode: str, binding: str = "none") -> float:
    price = float(BASE_PRICE)
    if paper_size == "A3":
        price *= A3_MULTIPLIER
    if color_mode == "color":
        price *= COLOR_MULTIPLIER
    return price + BINDING_SURCHARGE.get(binding, 0)


def quote(
    file_count: int,
    copies: int,
    paper_size: str = "A4",
    color_mode: str = "black",
    binding: str = "none",
) -> Dict[str, Any]:
    """Price a print job. Each uploaded file is counted as a single page."""
    _check_options(copies, paper_size, color_mode, binding)
    if file_count < 1:
        raise ValidationFailed("At least one file is required")

    unit = unit_price(paper_size, color_mode, binding)
    total_pages = file_count
    return {
        "unit_price": unit,
        "total_pages": total_pages,
        "copies": int(copies),
        "total_price": round(unit * total_pages * int(copies), 2),
    }


def place_xerox_order(
    db: Session,
    user: User,
    stored_files: List[Dict[str, Any]],
    copies: int,
    payment_method: str,
    paper_size: str = "A4",
    color_mode: str = "black",
    binding: str = "none",
    special_instructions: Optional[str] = None,
) -> XeroxOrder:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailed(f"Invalid payment method: {payment_method}")
    price = quote(len(stored_files), copies, paper_size, color_mode, binding)

    xo = XeroxOrder(
        user_id=user.id,
        files=[XeroxFile(**f) for f in stored_files],
        copies=int(copies),
        paper_size=paper_size,
        color_mode=color_mode,
        binding=binding,
        special_instructions=(special_instructions or "").strip() or None,
        total_pages=price["total_pages"],
        total_price=price["total_price"],
        payment_method=payment_method,
        payment_status="pending",
        status="pending",
    )
    user.xerox_orders.append(xo)

    db.add(xo)
    db.commit()
    db.refresh(xo)

    log.info("xerox order %s placed by user %s total=%.2f", xo.id, user.id, xo.total_price)
    return xo


def cancel_xerox_order(db: Session, xo: XeroxOrder, actor: User) -> XeroxOrder:
    cancel(xo, actor)
    db.commit()
    db.refresh(xo)
    return xo


def update_xerox_status(db: Session, xo: XeroxOrder, status: str) -> XeroxOrder:
    advance(xo, status, XEROX_STATUSES, XEROX_TRANSITIONS)
    db.commit()
    db.refresh(xo)
    return xo

# canteen/ordering/cart.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from ..models import OrderItem


def line_total(price: float, qty: int) -> float:
    return round(float(price) * int(qty), 2)


def cart_total(lines: Iterable[OrderItem]) -> float:
    total = 0.0
    for x in lines:
        total += float(x.total or 0.0)
    return round(total, 2)


def item_summary(lines: Iterable[OrderItem]) -> List[Dict[str, Any]]:
    return [{"name": x.name, "quantity": x.quantity} for x in lines]


def build_summary(lines: List[OrderItem], currency_symbol: str = "₹") -> Tuple[str, float]:
    if not lines:
        return ("Your cart is empty.", 0.0)

    out: List[str] = []
    for i, line in enumerate(lines, start=1):
        out.append(f"{i}. x{line.quantity} {line.name} = {currency_symbol}{float(line.total):.2f}")

    total = cart_total(lines)
    return ("Order summary:\n" + "\n".join(out) + f"\n\nTotal: {currency_symbol}{total:.2f}", total)

# canteen/routes/menu.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..db import get_db, get_or_404
from ..models import MenuItem
from ..schemas import MenuItemOut, ServiceType

# public: no token needed to browse
router = APIRouter(prefix="/api/menu", tags=["menu"])


def _available():
    return select(MenuItem).where(MenuItem.available.is_(True))


@router.get("", response_model=List[MenuItemOut])
def list_menu(db: Session = Depends(get_db)):
    return db.scalars(_available().order_by(MenuItem.category, MenuItem.name)).all()


@router.get("/categories/list")
def list_categories(db: Session = Depends(get_db)):
    cats = db.scalars(select(MenuItem.category).distinct().order_by(MenuItem.category)).all()
    return {"categories": cats}


@router.get("/category/{category}", response_model=List[MenuItemOut])
def by_category(category: str, db: Session = Depends(get_db)):
    q = _available().where(func.lower(MenuItem.category).contains(category.strip().lower()))
    return db.scalars(q.order_by(MenuItem.name)).all()


@router.get("/search/{query}", response_model=List[MenuItemOut])
def search(query: str, db: Session = Depends(get_db)):
    needle = query.strip().lower()
    q = _available().where(
        or_(
            func.lower(MenuItem.name).contains(needle),
            func.lower(MenuItem.description).contains(needle),
        )
    )
    return db.scalars(q.order_by(MenuItem.name)).all()


@router.get("/service/{service_type}", response_model=List[MenuItemOut])
def by_service(service_type: ServiceType, db: Session = Depends(get_db)):
    q = _available().where(MenuItem.service_type == service_type)
    return db.scalars(q.order_by(MenuItem.category, MenuItem.name)).all()


@router.get("/{item_id}", response_model=MenuItemOut)
def get_item(item_id: int, db: Session = Depends(get_db)):
    return get_or_404(db, MenuItem, item_id, "Menu item")

# canteen/seed.py
"""Reset the database to demo data: python -m canteen.seed"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .auth import hash_password
from .db import Base, SessionLocal, engine
from .models import MenuItem, Queue, User

log = logging.getLogger(__name__)

_FOOD_IMG = "https://images.unsplash.com/photo-1601050690597-df0568f70950?w=400&fit=crop"
_DRINK_IMG = "https://images.unsplash.com/photo-1544787219-7f47ccb76574?w=400&fit=crop"

MENU = [
    ("Veg Biryani", "Fragrant basmati rice cooked with aromatic spices and mixed vegetables", 80, "Main Course"),
    ("Chicken Curry", "Tender chicken pieces in rich, spicy curry sauce", 120, "Main Course"),
    ("Paneer Butter Masala", "Cottage cheese cubes in rich, creamy tomato gravy", 100, "Main Course"),
    ("Masala Dosa", "Crispy dosa filled with spiced potato mixture", 60, "Breakfast"),
    ("Idli Sambar", "Soft steamed rice cakes served with lentil soup", 40, "Breakfast"),
    ("Tea", "Hot masala chai", 15, "Beverages"),
    ("Coffee", "Strong filter coffee", 20, "Beverages"),
    ("Samosa", "Crispy pastry filled with spiced potatoes and peas", 20, "Snacks"),
    ("Vada Pav", "Spicy potato fritter in a soft bun", 25, "Snacks"),
    ("French Fries", "Crispy golden potato fries", 50, "Snacks"),
    ("Chocolate Shake", "Rich and creamy chocolate milkshake", 80, "Beverages"),
    ("Gulab Jamun", "Sweet milk solids in sugar syrup", 30, "Desserts"),
]

XEROX_MENU = [
    ("Lab Record Cover", "Printed cover page for lab records", 10, "Stationery"),
    ("Transparent File", "A4 transparent document file", 15, "Stationery"),
]

QUEUES = [
    {"name": "Canteen Queue", "service_type": "canteen", "max_capacity": 100, "estimated_wait_time": 15},
    {"name": "Xerox Queue", "service_type": "xerox", "max_capacity": 50, "estimated_wait_time": 10},
]


def seed(db: Session) -> None:
    """Insert demo rows into empty tables."""
    db.add(
        User(
            email="admin@college.com",
            password_hash=hash_password("admin123"),
            name="Admin User",
            role="admin",
            student_id="ADMIN001",
            department="Administration",
        )
    )
    db.add(
        User(
            email="student@college.com",
            password_hash=hash_password("student123"),
            name="Sample Student",
            role="student",
            student_id="STU001",
            department="Computer Science",
        )
    )

    for name, desc, price, cat in MENU:
        img = _DRINK_IMG if cat == "Beverages" else _FOOD_IMG
        db.add(MenuItem(name=name, description=desc, price=price, category=cat, image=img, service_type="canteen"))
    for name, desc, price, cat in XEROX_MENU:
        db.add(MenuItem(name=name, description=desc, price=price, category=cat, service_type="xerox"))

    for q in QUEUES:
        db.add(Queue(current_number=0, status="active", **q))

    db.commit()
    log.info("seeded %d menu items and %d queues", len(MENU) + len(XEROX_MENU), len(QUEUES))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()

    print("Default login credentials:")
    print("Admin: admin@college.com / admin123")
    print("Student: student@college.com / student123")


if __name__ == "__main__":
    main()

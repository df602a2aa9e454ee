# canteen/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .db import Base

ROLES = ("student", "admin")
SERVICE_TYPES = ("canteen", "xerox")
PAYMENT_METHODS = ("online", "offline")
PAYMENT_STATUSES = ("pending", "completed", "failed")

ORDER_STATUSES = ("pending", "preparing", "ready", "completed", "cancelled")
XEROX_STATUSES = ("pending", "processing", "ready", "completed", "cancelled")

PAPER_SIZES = ("A4", "A3", "Letter")
COLOR_MODES = ("black", "color")
BINDINGS = ("none", "staples", "spiral", "hardcover")

QUEUE_STATUSES = ("active", "paused", "closed")
CUSTOMER_STATUSES = ("waiting", "called", "served", "left")


def _status_history(record) -> list[dict]:
    history = []
    if record.created_at:
        history.append({"status": "pending", "timestamp": record.created_at})
    if record.updated_at and record.status != "pending":
        history.append({"status": record.status, "timestamp": record.updated_at})
    return history


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, default="student", nullable=False)  # student | admin
    student_id = Column(String, nullable=True)
    department = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="user", order_by="Order.id")
    xerox_orders = relationship("XeroxOrder", back_populates="user", order_by="XeroxOrder.id")
    queue_visits = relationship("QueueVisit", back_populates="user", order_by="QueueVisit.id")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (CheckConstraint("price >= 0", name="ck_menu_items_price"),)

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    price = Column(Float, nullable=False)
    category = Column(String, nullable=False, index=True)
    service_type = Column(String, nullable=False, default="canteen")  # canteen | xerox
    available = Column(Boolean, default=True, nullable=False)
    image = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (CheckConstraint("total >= 0", name="ck_orders_total"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total = Column(Float, nullable=False)
    status = Column(String, default="pending", nullable=False)
    service_type = Column(String, default="canteen", nullable=False)
    payment_method = Column(String, nullable=False)  # online | offline
    payment_status = Column(String, default="pending", nullable=False)
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = Column(Integer, nullable=False)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_history(self) -> list[dict]:
        return _status_history(self)


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    # snapshot rows outlive the menu item they were priced from
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    total = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")


class XeroxOrder(Base):
    __tablename__ = "xerox_orders"
    __table_args__ = (
        CheckConstraint("copies >= 1 AND copies <= 100", name="ck_xerox_orders_copies"),
        CheckConstraint("total_pages >= 1", name="ck_xerox_orders_pages"),
        CheckConstraint("total_price >= 0", name="ck_xerox_orders_price"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    copies = Column(Integer, nullable=False)
    paper_size = Column(String, default="A4", nullable=False)
    color_mode = Column(String, default="black", nullable=False)
    binding = Column(String, default="none", nullable=False)
    special_instructions = Column(Text, nullable=True)
    total_pages = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, default="pending", nullable=False)
    status = Column(String, default="pending", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = Column(Integer, nullable=False)

    user = relationship("User", back_populates="xerox_orders")
    files = relationship(
        "XeroxFile",
        back_populates="xerox_order",
        order_by="XeroxFile.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_history(self) -> list[dict]:
        return _status_history(self)


class XeroxFile(Base):
    __tablename__ = "xerox_files"
    id = Column(Integer, primary_key=True)
    xerox_order_id = Column(Integer, ForeignKey("xerox_orders.id"), nullable=False, index=True)
    filename = Column(String, nullable=False, unique=True)
    original_name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    mimetype = Column(String, nullable=False)

    xerox_order = relationship("XeroxOrder", back_populates="files")


class Queue(Base):
    __tablename__ = "queues"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    service_type = Column(String, nullable=False)
    current_number = Column(Integer, default=0, nullable=False)
    status = Column(String, default="active", nullable=False)  # active | paused | closed
    max_capacity = Column(Integer, default=100, nullable=False)
    estimated_wait_time = Column(Integer, default=15, nullable=False)  # minutes per customer
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = Column(Integer, nullable=False)

    # list order is join order; positions are recomputed from it on leave
    customers = relationship(
        "QueueCustomer",
        back_populates="queue",
        order_by="QueueCustomer.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def queue_length(self) -> int:
        return sum(1 for c in self.customers if c.status == "waiting")

    @property
    def current_wait_time(self) -> int:
        return self.queue_length * (self.estimated_wait_time or 0)


class QueueCustomer(Base):
    __tablename__ = "queue_customers"
    id = Column(Integer, primary_key=True)
    queue_id = Column(Integer, ForeignKey("queues.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow)
    position = Column(Integer, nullable=False)
    status = Column(String, default="waiting", nullable=False)

    queue = relationship("Queue", back_populates="customers")


class QueueVisit(Base):
    __tablename__ = "queue_visits"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    queue_id = Column(Integer, ForeignKey("queues.id"), nullable=False)
    position = Column(Integer, nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow)
    left_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="queue_visits")

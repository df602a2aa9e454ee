# canteen/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

ServiceType = Literal["canteen", "xerox"]
PaymentMethod = Literal["online", "offline"]
Role = Literal["student", "admin"]


class _In(BaseModel):
    # the web client sends camelCase; python callers use field names
    model_config = ConfigDict(populate_by_name=True)


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -------------------
# Auth / users
# -------------------
class SignupIn(_In):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    student_id: Optional[str] = Field(None, alias="studentId")
    department: Optional[str] = None
    phone: Optional[str] = None


class LoginIn(_In):
    email: EmailStr
    password: str


class ProfileIn(_In):
    name: Optional[str] = Field(None, min_length=2)
    student_id: Optional[str] = Field(None, alias="studentId")
    department: Optional[str] = None
    phone: Optional[str] = None


class RoleIn(_In):
    role: Role


class UserOut(_Out):
    id: int
    name: str
    email: str
    role: str
    student_id: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


class UserRef(_Out):
    id: int
    name: str
    email: str


# -------------------
# Menu
# -------------------
class MenuItemIn(_In):
    name: str = Field(..., min_length=2)
    description: str = Field("", max_length=2000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    image: Optional[str] = None
    available: bool = True
    service_type: ServiceType = Field(..., alias="serviceType")


class MenuItemUpdate(_In):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    available: Optional[bool] = None
    service_type: Optional[ServiceType] = Field(None, alias="serviceType")


class MenuItemOut(_Out):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    category: str
    service_type: str
    available: bool
    image: Optional[str] = None


# -------------------
# Orders
# -------------------
class CartLine(_In):
    item_id: int = Field(..., alias="itemId")
    quantity: int = Field(..., ge=1)


class OrderIn(_In):
    items: List[CartLine] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    service_type: ServiceType = Field("canteen", alias="serviceType")
    special_instructions: Optional[str] = Field(None, alias="specialInstructions")


class StatusIn(_In):
    status: str


class OrderItemOut(_Out):
    menu_item_id: Optional[int] = None
    name: str
    price: float
    quantity: int
    total: float


class StatusEvent(BaseModel):
    status: str
    timestamp: datetime


class OrderOut(_Out):
    id: int
    user_id: int
    items: List[OrderItemOut]
    total: float
    status: str
    service_type: str
    payment_method: str
    payment_status: str
    special_instructions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_history: List[StatusEvent] = []


class AdminOrderOut(OrderOut):
    user: Optional[UserRef] = None


# -------------------
# Xerox
# -------------------
class XeroxOptionsIn(_In):
    """Plain fields of the multipart xerox upload form."""

    copies: int = Field(..., ge=1, le=100)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    paper_size: str = Field("A4", alias="paperSize")
    color_mode: str = Field("black", alias="colorMode")
    binding: str = "none"
    special_instructions: Optional[str] = Field(None, alias="specialInstructions")


class XeroxFileOut(_Out):
    filename: str
    original_name: str
    size: int
    mimetype: str


class XeroxOrderOut(_Out):
    id: int
    user_id: int
    files: List[XeroxFileOut]
    copies: int
    paper_size: str
    color_mode: str
    binding: str
    special_instructions: Optional[str] = None
    total_pages: int
    total_price: float
    payment_method: str
    payment_status: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_history: List[StatusEvent] = []


class AdminXeroxOrderOut(XeroxOrderOut):
    user: Optional[UserRef] = None


# -------------------
# Queues
# -------------------
class QueueIn(_In):
    name: str = Field(..., min_length=2)
    service_type: ServiceType = Field(..., alias="serviceType")
    max_capacity: int = Field(100, ge=1, alias="maxCapacity")
    estimated_wait_time: int = Field(15, ge=0, alias="estimatedWaitTime")


class QueueCustomerOut(_Out):
    id: int
    user_id: int
    name: str
    joined_at: Optional[datetime] = None
    position: int
    status: str


class QueueSummaryOut(_Out):
    id: int
    name: str
    service_type: str
    current_number: int
    queue_length: int
    status: str
    current_wait_time: int


class QueueOut(QueueSummaryOut):
    max_capacity: int
    estimated_wait_time: int
    customers: List[QueueCustomerOut]

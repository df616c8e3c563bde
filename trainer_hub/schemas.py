from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, field_validator

from trainer_hub.dates import format_for_storage

# --------------------
# Package Catalog Schemas
# --------------------

class PackageBase(BaseModel):
    name: str
    sessions: int
    duration: int
    price: float

class PackageCreate(PackageBase):
    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError('Package name is required and cannot be empty')
        return v.strip()

class PackageUpdate(BaseModel):
    name: Optional[str] = None
    sessions: Optional[int] = None
    duration: Optional[int] = None
    price: Optional[float] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is not None and (not v or not v.strip()):
            raise ValueError('Package name cannot be empty')
        return v.strip() if v else v

class Package(PackageBase):
    id: int
    type: str
    is_active: bool
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


# --------------------
# Client Schemas
# --------------------

class ClientBase(BaseModel):
    name: str
    email: str
    phone: str
    package: str
    price: Optional[float] = None
    regular_slot: Optional[str] = None
    location: Optional[str] = None
    payment_type: Optional[str] = None
    birthday: Optional[str] = None

class ClientCreate(ClientBase):
    @field_validator('name', 'email', 'phone')
    @classmethod
    def validate_required(cls, v, info):
        if not v or not v.strip():
            raise ValueError(f'Client {info.field_name} is required and cannot be empty')
        return v.strip()

    @field_validator('birthday')
    @classmethod
    def validate_birthday(cls, v):
        if v is None or not v.strip():
            return None
        return format_for_storage(v)

class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    package: Optional[str] = None
    price: Optional[float] = None
    regular_slot: Optional[str] = None
    location: Optional[str] = None
    payment_type: Optional[str] = None
    birthday: Optional[str] = None

    @field_validator('name', 'email', 'phone')
    @classmethod
    def validate_not_blank(cls, v, info):
        if v is not None and (not v or not v.strip()):
            raise ValueError(f'Client {info.field_name} cannot be empty')
        return v.strip() if v else v

    @field_validator('birthday')
    @classmethod
    def validate_birthday(cls, v):
        if v is None or not v.strip():
            return None
        return format_for_storage(v)

class Client(ClientBase):
    id: int
    package_id: Optional[int] = None
    total_sessions: int
    sessions_left: int
    monthly_count: int
    join_date: str

    model_config = {
        "from_attributes": True
    }

class ClientStats(BaseModel):
    client_id: int
    monthly_count: int
    lifetime_count: int
    completed_count: int
    upcoming_count: int

class ImportFailure(BaseModel):
    row: int
    name: Optional[str] = None
    error: str

class ClientImportResult(BaseModel):
    created: List[Client] = []
    failed: List[ImportFailure] = []


# --------------------
# Session Schemas
# --------------------

class SessionCreate(BaseModel):
    client_id: int
    date: str
    time: str
    duration: int = 60
    package: Optional[str] = None
    status: str = "confirmed"
    location: Optional[str] = None
    payment_type: Optional[str] = None
    payment_status: Optional[str] = None
    price: Optional[float] = None

class SessionUpdate(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    package: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    payment_type: Optional[str] = None
    payment_status: Optional[str] = None
    price: Optional[float] = None

class StatusChange(BaseModel):
    status: str

class Session(BaseModel):
    id: int
    client_id: int
    client_name: str
    date: str
    time: str
    duration: int
    package: str
    status: str
    location: Optional[str] = None
    payment_type: Optional[str] = None
    payment_status: Optional[str] = None
    price: Optional[float] = None

    model_config = {
        "from_attributes": True
    }

class SessionOrdinal(BaseModel):
    current: int
    total: int

class SessionCounts(BaseModel):
    total_sessions: int
    sessions_left: int
    completed_sessions: int
    is_preview: bool

class RecurringBookingResult(BaseModel):
    sessions: List[Session] = []
    skipped_tokens: List[str] = []
    errors: List[str] = []

class ClientCreated(BaseModel):
    client: Client
    recurring: RecurringBookingResult


# --------------------
# Package Purchase Schemas
# --------------------

class PackageSpec(BaseModel):
    package_name: str
    package_sessions: int
    amount: float = 0.0
    payment_type: str = "Cash"

class PurchaseUpdate(BaseModel):
    package_name: Optional[str] = None
    package_sessions: Optional[int] = None
    amount: Optional[float] = None
    purchase_date: Optional[str] = None
    payment_type: Optional[str] = None
    payment_status: Optional[Literal["pending", "completed", "failed"]] = None
    notes: Optional[str] = None

class Purchase(BaseModel):
    id: int
    client_id: int
    client_name: str
    package_name: str
    package_sessions: int
    amount: float
    purchase_date: str
    payment_type: str
    payment_status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }

class PurchaseResult(BaseModel):
    success: bool
    purchase: Optional[Purchase] = None
    updated_client: Optional[Client] = None

class PurchaseEditResult(BaseModel):
    purchase: Purchase
    session_difference: int
    client: Optional[Client] = None
    warnings: List[str] = []

class PurchaseDeleteResult(BaseModel):
    success: bool
    client: Optional[Client] = None
    warnings: List[str] = []

class RevenueSummary(BaseModel):
    total_revenue: float
    pending_amount: float
    purchase_count: int


# --------------------
# Payment Schemas
# --------------------

class PaymentBase(BaseModel):
    client_id: int
    amount: float
    payment_type: Literal["Cash", "Venmo", "Check", "Zelle"]
    payment_status: Literal["pending", "completed", "failed"] = "pending"
    session_id: Optional[int] = None
    payment_date: Optional[str] = None
    notes: Optional[str] = None

class PaymentCreate(PaymentBase):
    pass

class PaymentUpdate(BaseModel):
    amount: Optional[float] = None
    payment_type: Optional[Literal["Cash", "Venmo", "Check", "Zelle"]] = None
    payment_status: Optional[Literal["pending", "completed", "failed"]] = None
    payment_date: Optional[str] = None
    notes: Optional[str] = None

class Payment(PaymentBase):
    id: int
    client_name: str
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


# --------------------
# Notification Schemas
# --------------------

class ReminderPreview(BaseModel):
    session_id: int
    client_id: int
    client_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    date: str
    time: str
    duration: int
    message: str

class ReminderSendRequest(BaseModel):
    session_ids: Optional[List[int]] = None
    template: Optional[str] = None
    channel: Literal["sms", "email"] = "sms"

class DeliveryResult(BaseModel):
    client_name: str
    recipient: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

class BirthdayAlert(BaseModel):
    client_id: int
    client_name: str
    email: str
    birthday: str
    status: Literal["today", "tomorrow", "soon"]
    days_until: int
    text: str

class BirthdayEmailRequest(BaseModel):
    subject: Optional[str] = None
    message: Optional[str] = None


# --------------------
# Reports
# --------------------

class Summary(BaseModel):
    total_clients: int
    sessions_today: int
    monthly_revenue: float
    sessions_remaining: int

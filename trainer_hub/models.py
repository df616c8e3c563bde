from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Float,
    Boolean,
)
from sqlalchemy.orm import relationship

from .database import Base


SESSION_STATUSES = ("pending", "confirmed", "cancelled", "completed")


def _utcnow():
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────
# Package catalog
# ─────────────────────────────────────────────────────────────
class Package(Base):
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    sessions = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes, 30 or 60
    price = Column(Float, nullable=False, default=0.0)
    type = Column(String(10), nullable=False)  # "30MIN" / "60MIN", derived from duration

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    clients = relationship("Client", back_populates="catalog_package")

    def __repr__(self) -> str:
        return f"<Package id={self.id} name={self.name!r} sessions={self.sessions}>"


# ─────────────────────────────────────────────────────────────
# Clients and their session balance
# ─────────────────────────────────────────────────────────────
class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)

    # Display name of the package; package_id points at the live catalog entry.
    package = Column(String(255), nullable=False)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="SET NULL"), nullable=True)
    price = Column(Float, nullable=True)  # custom price override

    total_sessions = Column(Integer, nullable=False, default=0)
    sessions_left = Column(Integer, nullable=False, default=0)
    monthly_count = Column(Integer, nullable=False, default=0)

    regular_slot = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    payment_type = Column(String(50), nullable=True)
    join_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    birthday = Column(String(10), nullable=True)  # YYYY-MM-DD, year may be a placeholder

    created_at = Column(DateTime, nullable=False, default=_utcnow)

    catalog_package = relationship("Package", back_populates="clients")
    sessions = relationship(
        "Session",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    purchases = relationship(
        "PackagePurchase",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    payments = relationship(
        "Payment",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} left={self.sessions_left}/{self.total_sessions}>"


# ─────────────────────────────────────────────────────────────
# Calendar bookings
# ─────────────────────────────────────────────────────────────
class Session(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    client_name = Column(String(255), nullable=False)

    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time = Column(String(8), nullable=False)  # HH:MM:SS
    duration = Column(Integer, nullable=False, default=60)
    package = Column(String(255), nullable=False)  # snapshot at booking time
    status = Column(String(20), nullable=False, default="confirmed")
    location = Column(String(255), nullable=True)

    payment_type = Column(String(50), nullable=True)
    payment_status = Column(String(20), nullable=True)
    price = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)

    client = relationship("Client", back_populates="sessions")


# ─────────────────────────────────────────────────────────────
# Package purchases (history of entitlement changes)
# ─────────────────────────────────────────────────────────────
class PackagePurchase(Base):
    __tablename__ = "package_purchases"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    client_name = Column(String(255), nullable=False)

    package_name = Column(String(255), nullable=False)
    package_sessions = Column(Integer, nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    purchase_date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    payment_type = Column(String(50), nullable=False, default="Cash")
    payment_status = Column(String(20), nullable=False, default="completed")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    client = relationship("Client", back_populates="purchases")


# ─────────────────────────────────────────────────────────────
# Payments
# ─────────────────────────────────────────────────────────────
class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    client_name = Column(String(255), nullable=False)

    amount = Column(Float, nullable=False)
    payment_type = Column(String(50), nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_date = Column(String(10), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)

    client = relationship("Client", back_populates="payments")

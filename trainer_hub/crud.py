import logging
import re
import warnings
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from trainer_hub import balances, models, scheduler, schemas
from trainer_hub.config import get_settings
from trainer_hub.database import persistence_guard
from trainer_hub.dates import format_for_storage
from trainer_hub.errors import (
    NotFoundError,
    PartialUpdateWarning,
    PaymentNotFound,
    PersistenceError,
    PurchaseNotFound,
    TrainerHubError,
)

logger = logging.getLogger(__name__)


def _settable(model, update_data: dict) -> dict:
    """Drop explicit nulls aimed at NOT NULL columns; nullable fields may still be cleared."""
    columns = model.__table__.columns
    return {
        k: v for k, v in update_data.items()
        if v is not None or (k in columns and columns[k].nullable)
    }


# --------------------
# Package Catalog
# --------------------

DEFAULT_PACKAGES = (
    {"name": "1x (30MIN)", "sessions": 1, "duration": 30, "price": 80},
    {"name": "5x PK 30MIN", "sessions": 5, "duration": 30, "price": 400},
    {"name": "10x PK 30MIN", "sessions": 10, "duration": 30, "price": 800},
    {"name": "1x (60MIN)", "sessions": 1, "duration": 60, "price": 120},
    {"name": "5x PK 60MIN", "sessions": 5, "duration": 60, "price": 600},
    {"name": "10x PK 60MIN", "sessions": 10, "duration": 60, "price": 1200},
)


def package_type(duration: int) -> str:
    return "30MIN" if duration == 30 else "60MIN"


def seed_default_packages(db: Session) -> int:
    """Fill an empty catalog with the standard packages. Returns how many were added."""
    if db.query(models.Package).count():
        return 0
    with persistence_guard(db, "seed package catalog"):
        for spec in DEFAULT_PACKAGES:
            db.add(models.Package(**spec, type=package_type(spec["duration"]), is_active=True))
    return len(DEFAULT_PACKAGES)


def create_package(db: Session, package_in: schemas.PackageCreate):
    """Add a package to the catalog. Prices and counts are taken as given."""
    db_package = models.Package(
        name=package_in.name,
        sessions=package_in.sessions,
        duration=package_in.duration,
        price=package_in.price,
        type=package_type(package_in.duration),
        is_active=True,
    )
    with persistence_guard(db, "create package"):
        db.add(db_package)
    db.refresh(db_package)
    return db_package


def get_packages(db: Session, active_only: bool = True):
    q = db.query(models.Package)
    if active_only:
        q = q.filter(models.Package.is_active == True)
    return q.order_by(models.Package.id).all()


def get_package(db: Session, package_id: int):
    return db.query(models.Package).filter(models.Package.id == package_id).first()


def find_package_by_name(db: Session, name: str):
    return (
        db.query(models.Package)
        .filter(models.Package.name == name, models.Package.is_active == True)
        .order_by(models.Package.id)
        .first()
    )


def update_package(db: Session, package_id: int, package_update: schemas.PackageUpdate):
    """
    Edit a catalog entry. type follows duration; a rename is carried to every
    client linked to this entry. Past purchases and sessions keep their names.
    """
    package = get_package(db, package_id)
    if not package:
        return None

    update_data = _settable(models.Package, package_update.model_dump(exclude_unset=True))
    old_name = package.name
    with persistence_guard(db, "update package"):
        for field_name, value in update_data.items():
            setattr(package, field_name, value)
        package.type = package_type(package.duration)
        if package.name != old_name:
            renamed = (
                db.query(models.Client)
                .filter(models.Client.package_id == package.id)
                .update({models.Client.package: package.name}, synchronize_session=False)
            )
            logger.info("Renamed package %r to %r on %s clients", old_name, package.name, renamed)
    db.refresh(package)
    return package


def delete_package(db: Session, package_id: int):
    """Soft delete a package by setting is_active to False."""
    package = get_package(db, package_id)
    if not package:
        return None

    with persistence_guard(db, "delete package"):
        package.is_active = False
    return package


# --------------------
# Client Ledger
# --------------------

def _catalog_id_for(db: Session, package_name: Optional[str]) -> Optional[int]:
    package = find_package_by_name(db, package_name) if package_name else None
    return package.id if package else None


def get_clients(db: Session):
    return db.query(models.Client).order_by(models.Client.name).all()


def get_client(db: Session, client_id: int) -> models.Client:
    return balances.get_client(db, client_id)


def create_client(
    db: Session,
    client_in: schemas.ClientCreate,
    *,
    today: Optional[date] = None,
) -> Tuple[models.Client, scheduler.RecurringBookingReport]:
    """
    Create a client with the standard starting allowance.

    Every new client starts at DEFAULT_SESSION_ALLOWANCE sessions whatever
    package was chosen. If the client has a regular slot, the coming weeks are
    booked afterwards; booking problems are reported, the client is kept.
    """
    today = today or date.today()
    allowance = get_settings().DEFAULT_SESSION_ALLOWANCE
    db_client = models.Client(
        **client_in.model_dump(),
        package_id=_catalog_id_for(db, client_in.package),
        total_sessions=allowance,
        sessions_left=allowance,
        monthly_count=0,
        join_date=today.isoformat(),
    )
    with persistence_guard(db, "create client"):
        db.add(db_client)
    db.refresh(db_client)
    logger.info("Created client %s (%s)", db_client.id, db_client.name)

    report = scheduler.RecurringBookingReport()
    if scheduler.has_regular_schedule(db_client.regular_slot):
        report = scheduler.book_recurring_sessions(db, db_client, today=today)
        if report.errors:
            logger.warning(
                "Client %s created but %s recurring bookings failed", db_client.name, len(report.errors)
            )
        db.refresh(db_client)
    return db_client, report


def edit_client(db: Session, client_id: int, client_update: schemas.ClientUpdate) -> models.Client:
    """
    Overwrite the given fields. Session counters are left alone even when the
    package changes; use add_purchase / apply_session_delta for that.
    """
    client = balances.get_client(db, client_id)
    update_data = _settable(models.Client, client_update.model_dump(exclude_unset=True))
    with persistence_guard(db, "update client"):
        for field_name, value in update_data.items():
            setattr(client, field_name, value)
        if "package" in update_data:
            client.package_id = _catalog_id_for(db, client.package)
    db.refresh(client)
    return client


def delete_client(db: Session, client_id: int, name: Optional[str] = None) -> None:
    """Delete a client; sessions, purchases and payments go with it."""
    client = balances.get_client(db, client_id)
    name = name or client.name
    with persistence_guard(db, f"delete client {name}"):
        db.delete(client)
    logger.info("Deleted client %s (%s)", client_id, name)


def refresh_client_stats(db: Session, client_id: int, today: Optional[date] = None) -> schemas.ClientStats:
    """Recount a client's sessions and store this month's count on the client."""
    today = today or date.today()
    client = balances.get_client(db, client_id)
    sessions = scheduler.get_sessions(db, client_id=client_id)
    month_prefix = today.strftime("%Y-%m")

    monthly = sum(1 for s in sessions if s.date.startswith(month_prefix) and s.status != "cancelled")
    completed = sum(1 for s in sessions if scheduler.is_session_completed(s, today))
    upcoming = sum(
        1 for s in sessions
        if s.date >= today.isoformat() and s.status not in ("cancelled", "completed")
    )

    if client.monthly_count != monthly:
        with persistence_guard(db, "update monthly count"):
            client.monthly_count = monthly

    return schemas.ClientStats(
        client_id=client_id,
        monthly_count=monthly,
        lifetime_count=len(sessions),
        completed_count=completed,
        upcoming_count=upcoming,
    )


# --------------------
# Client import (spreadsheet rows)
# --------------------

IMPORT_HEADERS = {
    "name": "name",
    "fullname": "name",
    "email": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "package": "package",
    "price": "price",
    "regularslot": "regular_slot",
    "location": "location",
    "paymenttype": "payment_type",
    "birthday": "birthday",
}
IMPORT_DEFAULTS = {
    "package": "10x 30MIN Basic",
    "price": 120,
    "regular_slot": "TBD",
    "location": "TBD",
    "payment_type": "Cash",
}
MONTH_DAY_RE = re.compile(r"^\d{2}-\d{2}$")


def _normalize_header(header: str) -> str:
    return re.sub(r"[^a-z]", "", str(header).lower())


def _import_birthday(value, today: date) -> Optional[str]:
    text = str(value or "").strip()
    if MONTH_DAY_RE.match(text):
        return f"{today.year}-{text}"
    return text or None


def import_clients(
    db: Session,
    rows: Iterable[Mapping[str, object]],
    *,
    today: Optional[date] = None,
) -> Tuple[List[models.Client], List[schemas.ImportFailure]]:
    """
    Create clients from spreadsheet rows keyed by header name, one at a time.

    A bad row is recorded and skipped; the remaining rows still import.
    """
    today = today or date.today()
    created, failed = [], []
    for index, row in enumerate(rows, start=1):
        data = dict(IMPORT_DEFAULTS)
        for header, value in row.items():
            field_name = IMPORT_HEADERS.get(_normalize_header(header))
            if field_name and value not in (None, ""):
                data[field_name] = str(value).strip() if field_name != "price" else value
        data["birthday"] = _import_birthday(data.get("birthday"), today)

        try:
            client_in = schemas.ClientCreate(**data)
            client, _ = create_client(db, client_in, today=today)
        except (ValidationError, TrainerHubError) as e:
            logger.warning("Import row %s (%s) failed: %s", index, data.get("name"), e)
            failed.append(schemas.ImportFailure(row=index, name=data.get("name"), error=str(e)))
            continue
        created.append(client)

    logger.info("Imported %s clients, %s rows failed", len(created), len(failed))
    return created, failed


# --------------------
# Package Purchase Ledger
# --------------------

@dataclass
class PurchaseOutcome:
    success: bool
    purchase: Optional[models.PackagePurchase] = None
    updated_client: Optional[models.Client] = None


def add_purchase(
    db: Session,
    client_id: int,
    package_spec: schemas.PackageSpec,
    *,
    today: Optional[date] = None,
) -> PurchaseOutcome:
    """
    Record a completed package purchase, then add its sessions to the client.

    The two writes are separate. If the balance update fails the purchase row
    stays and success is False.
    """
    client = balances.get_client(db, client_id)
    purchase = models.PackagePurchase(
        client_id=client.id,
        client_name=client.name,
        package_name=package_spec.package_name,
        package_sessions=package_spec.package_sessions,
        amount=package_spec.amount,
        purchase_date=(today or date.today()).isoformat(),
        payment_type=package_spec.payment_type,
        payment_status="completed",
        notes="Additional package purchase",
    )
    with persistence_guard(db, "record package purchase"):
        db.add(purchase)
    db.refresh(purchase)

    try:
        updated = balances.adjust_client_balance(
            db,
            client_id,
            total_delta=package_spec.package_sessions,
            left_delta=package_spec.package_sessions,
        )
    except (PersistenceError, NotFoundError) as e:
        message = f"Purchase {purchase.id} recorded but {client.name}'s sessions were not updated: {e}"
        logger.warning(message)
        warnings.warn(message, PartialUpdateWarning, stacklevel=2)
        return PurchaseOutcome(success=False, purchase=purchase)

    logger.info(
        "Added %s sessions to %s; new total %s",
        package_spec.package_sessions, client.name, updated.total_sessions,
    )
    return PurchaseOutcome(success=True, purchase=purchase, updated_client=updated)


def get_purchase(db: Session, purchase_id: int) -> models.PackagePurchase:
    purchase = db.get(models.PackagePurchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(f"Purchase {purchase_id} not found")
    return purchase


def get_purchases(db: Session, *, client_id: Optional[int] = None):
    q = db.query(models.PackagePurchase)
    if client_id is not None:
        q = q.filter(models.PackagePurchase.client_id == client_id)
    return q.order_by(models.PackagePurchase.purchase_date.desc(), models.PackagePurchase.id.desc()).all()


def edit_purchase(db: Session, purchase_id: int, purchase_update: schemas.PurchaseUpdate) -> models.PackagePurchase:
    """Update the purchase row only; the caller applies any session difference to the client."""
    purchase = get_purchase(db, purchase_id)
    update_data = _settable(models.PackagePurchase, purchase_update.model_dump(exclude_unset=True))
    if update_data.get("purchase_date"):
        update_data["purchase_date"] = format_for_storage(update_data["purchase_date"])
    with persistence_guard(db, "update package purchase"):
        for field_name, value in update_data.items():
            setattr(purchase, field_name, value)
    db.refresh(purchase)
    return purchase


def delete_purchase(db: Session, purchase_id: int) -> schemas.Purchase:
    """Delete the purchase row and return what it held; the caller takes the sessions back off the client."""
    purchase = get_purchase(db, purchase_id)
    snapshot = schemas.Purchase.model_validate(purchase)
    with persistence_guard(db, "delete package purchase"):
        db.delete(purchase)
    return snapshot


def session_difference(original_sessions: int, new_sessions: int) -> int:
    return new_sessions - original_sessions


def apply_session_delta(db: Session, client_id: int, delta: int) -> models.Client:
    """Add delta to both counters of a client, never going below zero."""
    return balances.adjust_client_balance(
        db, client_id, total_delta=delta, left_delta=delta, floor_at_zero=True
    )


def settle_purchase_change(db: Session, purchase_id: int, client_id: int, delta: int) -> Optional[models.Client]:
    """
    Second step of a purchase edit or delete: carry the session change to the client.

    The purchase row is already committed. If the client cannot be updated a
    PartialUpdateWarning is issued and None returned. A zero delta leaves the
    counters alone and returns the client as it stands.
    """
    try:
        if not delta:
            return get_client(db, client_id)
        return apply_session_delta(db, client_id, delta)
    except (PersistenceError, NotFoundError) as e:
        message = f"Purchase {purchase_id} saved but client {client_id}'s sessions were not updated: {e}"
        logger.warning(message)
        warnings.warn(message, PartialUpdateWarning, stacklevel=2)
        return None


def revenue_summary(db: Session, *, client_id: Optional[int] = None) -> schemas.RevenueSummary:
    purchases = get_purchases(db, client_id=client_id)
    return schemas.RevenueSummary(
        total_revenue=sum(p.amount for p in purchases if p.payment_status == "completed"),
        pending_amount=sum(p.amount for p in purchases if p.payment_status == "pending"),
        purchase_count=len(purchases),
    )


# --------------------
# Payments
# --------------------

def create_payment(db: Session, payment_in: schemas.PaymentCreate) -> models.Payment:
    client = balances.get_client(db, payment_in.client_id)
    data = payment_in.model_dump()
    if data.get("payment_date"):
        data["payment_date"] = format_for_storage(data["payment_date"])
    payment = models.Payment(**data, client_name=client.name)
    with persistence_guard(db, "record payment"):
        db.add(payment)
    db.refresh(payment)
    return payment


def get_payment(db: Session, payment_id: int) -> models.Payment:
    payment = db.get(models.Payment, payment_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {payment_id} not found")
    return payment


def update_payment(db: Session, payment_id: int, payment_update: schemas.PaymentUpdate) -> models.Payment:
    payment = get_payment(db, payment_id)
    update_data = _settable(models.Payment, payment_update.model_dump(exclude_unset=True))
    if update_data.get("payment_date"):
        update_data["payment_date"] = format_for_storage(update_data["payment_date"])
    with persistence_guard(db, "update payment"):
        for field_name, value in update_data.items():
            setattr(payment, field_name, value)
    db.refresh(payment)
    return payment


def get_payments(db: Session, *, client_id: Optional[int] = None):
    q = db.query(models.Payment)
    if client_id is not None:
        q = q.filter(models.Payment.client_id == client_id)
    return q.order_by(models.Payment.created_at.desc(), models.Payment.id.desc()).all()


# --------------------
# Reports Helpers
# --------------------

def get_summary(db: Session, today: Optional[date] = None) -> schemas.Summary:
    """Dashboard numbers: clients, today's bookings, this month's revenue, sessions owed."""
    today = today or date.today()
    total_clients = db.query(func.count(models.Client.id)).scalar()
    sessions_today = (
        db.query(func.count(models.Session.id))
        .filter(models.Session.date == today.isoformat(), models.Session.status != "cancelled")
        .scalar()
    )
    monthly_revenue = (
        db.query(func.sum(models.PackagePurchase.amount))
        .filter(
            models.PackagePurchase.payment_status == "completed",
            models.PackagePurchase.purchase_date.like(f"{today:%Y-%m}-%"),
        )
        .scalar()
    )
    sessions_remaining = db.query(func.sum(models.Client.sessions_left)).scalar()
    return schemas.Summary(
        total_clients=total_clients or 0,
        sessions_today=sessions_today or 0,
        monthly_revenue=monthly_revenue or 0.0,
        sessions_remaining=sessions_remaining or 0,
    )

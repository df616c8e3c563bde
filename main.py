import logging
import warnings
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from trainer_hub import crud, models, notifications, reconciliation, scheduler, schemas
from trainer_hub.config import get_settings
from trainer_hub.database import SessionLocal, engine, get_db
from trainer_hub.errors import (
    InvalidStatusTransitionError,
    NoSessionsRemainingError,
    NotFoundError,
    NotificationError,
    PackageNotFound,
    PartialUpdateWarning,
    PersistenceError,
    TrainerHubError,
)

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("trainer_hub")

# ------------------------------------------------------------------
# Database initialization
# ------------------------------------------------------------------
models.Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        added = crud.seed_default_packages(db)
        if added:
            logger.info("Seeded %s default packages", added)
    finally:
        db.close()
    yield


def get_notifier() -> notifications.NotificationDispatcher:
    return notifications.get_dispatcher()


# ------------------------------------------------------------------
# FastAPI app and error mapping
# ------------------------------------------------------------------
app = FastAPI(title="Trainer Hub", lifespan=lifespan)


@app.exception_handler(TrainerHubError)
async def trainer_hub_error_handler(request: Request, exc: TrainerHubError):
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, (NoSessionsRemainingError, InvalidStatusTransitionError)):
        status_code = 409
    elif isinstance(exc, PersistenceError):
        status_code = 503
    elif isinstance(exc, NotificationError):
        status_code = 502
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _run_collecting_warnings(func, *args, **kwargs):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", PartialUpdateWarning)
        result = func(*args, **kwargs)
    return result, [str(w.message) for w in caught if issubclass(w.category, PartialUpdateWarning)]


# ------------------------------------------------------------------
# Package catalog
# ------------------------------------------------------------------
@app.get("/packages/", response_model=List[schemas.Package])
def list_packages(db: Session = Depends(get_db)):
    return crud.get_packages(db)


@app.post("/packages/", response_model=schemas.Package)
def create_package(package_in: schemas.PackageCreate, db: Session = Depends(get_db)):
    return crud.create_package(db, package_in)


@app.put("/packages/{package_id}", response_model=schemas.Package)
def update_package(package_id: int, package_update: schemas.PackageUpdate, db: Session = Depends(get_db)):
    package = crud.update_package(db, package_id, package_update)
    if not package:
        raise PackageNotFound(f"Package {package_id} not found")
    return package


@app.delete("/packages/{package_id}")
def delete_package(package_id: int, db: Session = Depends(get_db)):
    if not crud.delete_package(db, package_id):
        raise PackageNotFound(f"Package {package_id} not found")
    return {"success": True}


# ------------------------------------------------------------------
# Clients
# ------------------------------------------------------------------
@app.get("/clients/", response_model=List[schemas.Client])
def list_clients(db: Session = Depends(get_db)):
    return crud.get_clients(db)


@app.post("/clients/", response_model=schemas.ClientCreated)
def create_client(client_in: schemas.ClientCreate, db: Session = Depends(get_db)):
    client, report = crud.create_client(db, client_in)
    return schemas.ClientCreated(
        client=schemas.Client.model_validate(client),
        recurring=schemas.RecurringBookingResult(
            sessions=[schemas.Session.model_validate(s) for s in report.sessions],
            skipped_tokens=report.skipped_tokens,
            errors=report.errors,
        ),
    )


@app.post("/clients/import", response_model=schemas.ClientImportResult)
def import_clients(rows: List[Dict[str, Any]], db: Session = Depends(get_db)):
    created, failed = crud.import_clients(db, rows)
    return schemas.ClientImportResult(
        created=[schemas.Client.model_validate(c) for c in created],
        failed=failed,
    )


@app.get("/clients/{client_id}", response_model=schemas.Client)
def get_client(client_id: int, db: Session = Depends(get_db)):
    return crud.get_client(db, client_id)


@app.put("/clients/{client_id}", response_model=schemas.Client)
def edit_client(client_id: int, client_update: schemas.ClientUpdate, db: Session = Depends(get_db)):
    return crud.edit_client(db, client_id, client_update)


@app.delete("/clients/{client_id}")
def delete_client(client_id: int, db: Session = Depends(get_db)):
    crud.delete_client(db, client_id)
    return {"success": True}


@app.get("/clients/{client_id}/stats", response_model=schemas.ClientStats)
def client_stats(client_id: int, db: Session = Depends(get_db)):
    return crud.refresh_client_stats(db, client_id)


@app.get("/clients/{client_id}/session-counts", response_model=schemas.SessionCounts)
def client_session_counts(client_id: int, package: Optional[str] = None, db: Session = Depends(get_db)):
    client = crud.get_client(db, client_id)
    return reconciliation.session_counts(
        client,
        scheduler.get_sessions(db, client_id=client_id),
        candidate_package=package,
        catalog=crud.get_packages(db),
    )


# ------------------------------------------------------------------
# Package purchases
# ------------------------------------------------------------------
@app.get("/purchases/", response_model=List[schemas.Purchase])
def list_purchases(client_id: Optional[int] = None, db: Session = Depends(get_db)):
    return crud.get_purchases(db, client_id=client_id)


@app.get("/purchases/revenue", response_model=schemas.RevenueSummary)
def purchase_revenue(client_id: Optional[int] = None, db: Session = Depends(get_db)):
    return crud.revenue_summary(db, client_id=client_id)


@app.post("/clients/{client_id}/purchases", response_model=schemas.PurchaseResult)
def add_purchase(client_id: int, package_spec: schemas.PackageSpec, db: Session = Depends(get_db)):
    outcome = crud.add_purchase(db, client_id, package_spec)
    return schemas.PurchaseResult(
        success=outcome.success,
        purchase=schemas.Purchase.model_validate(outcome.purchase) if outcome.purchase else None,
        updated_client=schemas.Client.model_validate(outcome.updated_client) if outcome.updated_client else None,
    )


@app.put("/purchases/{purchase_id}", response_model=schemas.PurchaseEditResult)
def edit_purchase(purchase_id: int, purchase_update: schemas.PurchaseUpdate, db: Session = Depends(get_db)):
    original_sessions = crud.get_purchase(db, purchase_id).package_sessions

    purchase = crud.edit_purchase(db, purchase_id, purchase_update)
    difference = crud.session_difference(original_sessions, purchase.package_sessions)

    client, problems = _run_collecting_warnings(
        crud.settle_purchase_change, db, purchase_id, purchase.client_id, difference
    )
    return schemas.PurchaseEditResult(
        purchase=schemas.Purchase.model_validate(purchase),
        session_difference=difference,
        client=schemas.Client.model_validate(client) if client else None,
        warnings=problems,
    )


@app.delete("/purchases/{purchase_id}", response_model=schemas.PurchaseDeleteResult)
def delete_purchase(purchase_id: int, db: Session = Depends(get_db)):
    removed = crud.delete_purchase(db, purchase_id)
    client, problems = _run_collecting_warnings(
        crud.settle_purchase_change, db, purchase_id, removed.client_id, -removed.package_sessions
    )
    return schemas.PurchaseDeleteResult(
        success=True,
        client=schemas.Client.model_validate(client) if client else None,
        warnings=problems,
    )


# ------------------------------------------------------------------
# Payments
# ------------------------------------------------------------------
@app.get("/payments/", response_model=List[schemas.Payment])
def list_payments(client_id: Optional[int] = None, db: Session = Depends(get_db)):
    return crud.get_payments(db, client_id=client_id)


@app.post("/payments/", response_model=schemas.Payment)
def create_payment(payment_in: schemas.PaymentCreate, db: Session = Depends(get_db)):
    return crud.create_payment(db, payment_in)


@app.put("/payments/{payment_id}", response_model=schemas.Payment)
def update_payment(payment_id: int, payment_update: schemas.PaymentUpdate, db: Session = Depends(get_db)):
    return crud.update_payment(db, payment_id, payment_update)


# ------------------------------------------------------------------
# Sessions and calendar
# ------------------------------------------------------------------
@app.get("/sessions/", response_model=List[schemas.Session])
def list_sessions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    client_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return scheduler.get_sessions(db, start, end, client_id=client_id)


@app.post("/sessions/", response_model=schemas.Session)
def schedule_session(session_in: schemas.SessionCreate, db: Session = Depends(get_db)):
    return scheduler.schedule_session(db, session_in)


@app.post("/sessions/sweep")
def sweep_sessions(db: Session = Depends(get_db)):
    return {"completed": scheduler.sweep_completed_sessions(db)}


@app.put("/sessions/{session_id}", response_model=schemas.Session)
def update_session(session_id: int, session_update: schemas.SessionUpdate, db: Session = Depends(get_db)):
    return scheduler.update_session(db, session_id, session_update)


@app.post("/sessions/{session_id}/status", response_model=schemas.Session)
def change_session_status(session_id: int, change: schemas.StatusChange, db: Session = Depends(get_db)):
    return scheduler.transition_session(db, session_id, change.status)


@app.delete("/sessions/{session_id}")
def delete_session(session_id: int, client_id: Optional[int] = None, db: Session = Depends(get_db)):
    client, problems = _run_collecting_warnings(scheduler.delete_session, db, session_id, client_id)
    return {
        "success": True,
        "client": schemas.Client.model_validate(client) if client else None,
        "warnings": problems,
    }


@app.get("/sessions/{session_id}/ordinal", response_model=schemas.SessionOrdinal)
def session_ordinal(session_id: int, db: Session = Depends(get_db)):
    current, total = scheduler.get_session_ordinal(db, session_id)
    return schemas.SessionOrdinal(current=current, total=total)


@app.get("/calendar/day", response_model=List[schemas.Session])
def calendar_day(date: str, db: Session = Depends(get_db)):
    return scheduler.get_sessions_for_day(db, date)


@app.get("/calendar/slot", response_model=Optional[schemas.Session])
def calendar_slot(date: str, time: str, db: Session = Depends(get_db)):
    return scheduler.find_session_at(db, date, time)


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------
@app.get("/notifications/reminders", response_model=List[schemas.ReminderPreview])
def reminder_preview(template: Optional[str] = None, db: Session = Depends(get_db)):
    return notifications.build_reminders(db, template=template)


@app.post("/notifications/reminders/send", response_model=List[schemas.DeliveryResult])
def send_reminders(
    request_in: schemas.ReminderSendRequest,
    db: Session = Depends(get_db),
    notifier: notifications.NotificationDispatcher = Depends(get_notifier),
):
    reminders = notifications.build_reminders(
        db, template=request_in.template, session_ids=request_in.session_ids
    )
    return notifier.send_reminders(reminders, channel=request_in.channel)


@app.get("/notifications/birthdays", response_model=List[schemas.BirthdayAlert])
def birthday_alerts(db: Session = Depends(get_db)):
    return notifications.upcoming_birthdays(crud.get_clients(db))


@app.post("/notifications/birthdays/{client_id}/send", response_model=schemas.DeliveryResult)
def send_birthday_email(
    client_id: int,
    request_in: schemas.BirthdayEmailRequest,
    db: Session = Depends(get_db),
    notifier: notifications.NotificationDispatcher = Depends(get_notifier),
):
    client = crud.get_client(db, client_id)
    return notifier.send_birthday_email(client, request_in.subject, request_in.message)


# ------------------------------------------------------------------
# Summary endpoint
# ------------------------------------------------------------------
@app.get("/summary/", response_model=schemas.Summary)
def summary(db: Session = Depends(get_db)):
    return crud.get_summary(db)

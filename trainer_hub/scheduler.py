# trainer_hub/scheduler.py
"""
Calendar bookings and the session balance they draw on.

Creating a session charges one session to the client, deleting one refunds it
(capped at total_sessions). Updates, including status changes, never touch the
balance.
"""
import logging
import warnings
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from trainer_hub import balances, models, schemas
from trainer_hub.config import get_settings
from trainer_hub.database import persistence_guard
from trainer_hub.dates import (
    format_for_storage,
    normalize_time,
    same_calendar_day,
    to_24_hour,
    to_date,
)
from trainer_hub.errors import (
    InvalidDateError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    InvalidTimeError,
    NoSessionsRemainingError,
    NotFoundError,
    PartialUpdateWarning,
    PersistenceError,
    SessionClientMismatchError,
    SessionNotFound,
)

logger = logging.getLogger(__name__)

DAY_NAMES = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
}


def _validate_status(status: str) -> str:
    if status not in models.SESSION_STATUSES:
        raise InvalidStatusError(
            f"Invalid status {status!r}; expected one of {', '.join(models.SESSION_STATUSES)}"
        )
    return status


def is_session_completed(session, today: Optional[date] = None) -> bool:
    """A session counts as completed if marked so or if its date has passed."""
    if session.status == "completed":
        return True
    try:
        return to_date(session.date) < (today or date.today())
    except InvalidDateError:
        return False


# --------------------
# Session CRUD
# --------------------

def schedule_session(db: Session, session_in: schemas.SessionCreate) -> models.Session:
    """
    Book a session and charge it to the client's balance.

    Date and time are validated before anything is written. The balance is
    re-read from the database rather than trusted from any loaded client.
    If the charge fails, the new booking is deleted again.
    """
    session_date = format_for_storage(session_in.date)
    session_time = normalize_time(session_in.time)
    status = _validate_status(session_in.status)

    client = balances.get_client(db, session_in.client_id)
    if balances.current_sessions_left(db, client.id) <= 0:
        raise NoSessionsRemainingError(f"{client.name} has no sessions remaining")

    db_session = models.Session(
        client_id=client.id,
        client_name=client.name,
        date=session_date,
        time=session_time,
        duration=session_in.duration,
        package=session_in.package or client.package,
        status=status,
        location=session_in.location if session_in.location is not None else client.location,
        payment_type=session_in.payment_type,
        payment_status=session_in.payment_status,
        price=session_in.price,
    )
    with persistence_guard(db, "schedule session"):
        db.add(db_session)
    db.refresh(db_session)

    try:
        balances.adjust_client_balance(db, client.id, left_delta=-1, floor_at_zero=True)
    except PersistenceError:
        logger.warning(
            "Could not charge session %s to %s; removing the booking", db_session.id, client.name
        )
        _remove_uncharged_session(db, db_session)
        raise

    logger.info("Scheduled session %s for %s on %s at %s", db_session.id, client.name, session_date, session_time)
    return db_session


def _remove_uncharged_session(db: Session, db_session: models.Session) -> None:
    session_id = db_session.id
    try:
        with persistence_guard(db, "remove uncharged session"):
            db.delete(db_session)
    except PersistenceError:
        message = f"Session {session_id} was booked but not charged and could not be removed"
        logger.error(message)
        warnings.warn(message, PartialUpdateWarning, stacklevel=3)


def update_session(db: Session, session_id: int, session_update: schemas.SessionUpdate) -> models.Session:
    update_data = {
        k: v for k, v in session_update.model_dump(exclude_unset=True).items() if v is not None
    }
    if "date" in update_data:
        update_data["date"] = format_for_storage(update_data["date"])
    if "time" in update_data:
        update_data["time"] = normalize_time(update_data["time"])
    if "status" in update_data:
        _validate_status(update_data["status"])

    db_session = get_session(db, session_id)
    with persistence_guard(db, "update session"):
        for field_name, value in update_data.items():
            setattr(db_session, field_name, value)
    db.refresh(db_session)
    return db_session


def delete_session(db: Session, session_id: int, client_id: Optional[int] = None) -> Optional[models.Client]:
    """
    Delete a booking and refund one session to the client.

    The refund always goes to the booking's owner; a client_id naming anyone
    else is rejected before anything is deleted. Returns the refunded client,
    or None when the booking was removed but the refund could not be written
    (a PartialUpdateWarning is issued).
    """
    db_session = get_session(db, session_id)
    if client_id is not None and client_id != db_session.client_id:
        raise SessionClientMismatchError(
            f"Session {session_id} belongs to client {db_session.client_id}, not {client_id}"
        )
    client_id = db_session.client_id

    with persistence_guard(db, "delete session"):
        db.delete(db_session)

    try:
        client = balances.adjust_client_balance(db, client_id, left_delta=1, cap_at_total=True)
    except (PersistenceError, NotFoundError) as e:
        message = f"Session {session_id} deleted but the session was not refunded: {e}"
        logger.warning(message)
        warnings.warn(message, PartialUpdateWarning, stacklevel=2)
        return None

    logger.info("Deleted session %s and refunded client %s", session_id, client_id)
    return client


def transition_session(db: Session, session_id: int, new_status: str) -> models.Session:
    _validate_status(new_status)
    db_session = get_session(db, session_id)
    if new_status not in ALLOWED_TRANSITIONS.get(db_session.status, set()):
        raise InvalidStatusTransitionError(
            f"Cannot move session {session_id} from {db_session.status} to {new_status}"
        )
    with persistence_guard(db, "change session status"):
        db_session.status = new_status
    db.refresh(db_session)
    return db_session


def sweep_completed_sessions(db: Session, today: Optional[date] = None) -> int:
    """Mark confirmed sessions dated before today as completed. Returns the number changed."""
    cutoff = (today or date.today()).isoformat()
    with persistence_guard(db, "mark past sessions completed"):
        changed = (
            db.query(models.Session)
            .filter(models.Session.status == "confirmed", models.Session.date < cutoff)
            .update({models.Session.status: "completed"}, synchronize_session=False)
        )
    if changed:
        logger.info("Marked %s past sessions completed", changed)
    return changed


def get_session(db: Session, session_id: int) -> models.Session:
    db_session = db.get(models.Session, session_id)
    if db_session is None:
        raise SessionNotFound(f"Session {session_id} not found")
    return db_session


def get_sessions(
    db: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    client_id: Optional[int] = None,
):
    q = db.query(models.Session)
    if client_id is not None:
        q = q.filter(models.Session.client_id == client_id)
    if start:
        q = q.filter(models.Session.date >= format_for_storage(start))
    if end:
        q = q.filter(models.Session.date <= format_for_storage(end))
    return q.order_by(models.Session.date, models.Session.time).all()


def get_sessions_for_day(db: Session, day) -> List[models.Session]:
    target = format_for_storage(day)
    return get_sessions(db, target, target)


# --------------------
# Calendar helpers
# --------------------

def match_slot(sessions: Iterable, day, display_time: str):
    """
    Find the booking shown in a calendar cell.

    display_time is the cell label, e.g. "5:00 AM". The first session on the
    same calendar day whose HH:MM matches wins.
    """
    slot = to_24_hour(display_time)
    for s in sessions:
        if same_calendar_day(s.date, day) and (s.time or "")[:5] == slot:
            return s
    return None


def find_session_at(db: Session, day, display_time: str) -> Optional[models.Session]:
    return match_slot(get_sessions_for_day(db, day), day, display_time)


def session_ordinal(session, sessions: Iterable, total_sessions: int) -> Tuple[int, int]:
    """
    Position of a session among its client's bookings, for "session N of M" labels.

    Bookings are ordered by date, then time string. M is the client's
    total_sessions and is not reconciled with sessions_left.
    """
    key = (session.date, session.time)
    earlier = sum(
        1 for s in sessions
        if s.client_id == session.client_id and s.id != session.id and (s.date, s.time) < key
    )
    return earlier + 1, total_sessions


def get_session_ordinal(db: Session, session_id: int) -> Tuple[int, int]:
    db_session = get_session(db, session_id)
    client = balances.get_client(db, db_session.client_id)
    return session_ordinal(db_session, get_sessions(db, client_id=client.id), client.total_sessions)


# --------------------
# Recurring bookings
# --------------------

@dataclass
class RecurringBookingReport:
    sessions: List[models.Session] = field(default_factory=list)
    skipped_tokens: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def has_regular_schedule(regular_slot: Optional[str]) -> bool:
    return bool(regular_slot and regular_slot.strip() and regular_slot.strip().upper() != "TBD")


def parse_regular_slot(regular_slot: str) -> Tuple[List[Tuple[int, str]], List[str]]:
    """
    Split "Monday 09:00, Wed 2:00 PM" into (weekday, "HH:MM:SS") pairs.

    Tokens with an unknown day name or an unreadable time are returned
    separately and otherwise ignored.
    """
    slots, skipped = [], []
    for token in (t.strip() for t in (regular_slot or "").split(",")):
        if not token:
            continue
        parts = token.split(None, 1)
        weekday = DAY_NAMES.get(parts[0].lower().rstrip("."))
        if weekday is None or len(parts) < 2:
            skipped.append(token)
            continue
        try:
            slots.append((weekday, f"{to_24_hour(parts[1])}:00"))
        except InvalidTimeError:
            skipped.append(token)
    return slots, skipped


def next_weekday(today: date, weekday: int) -> date:
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def duration_for_package(package: Optional[str]) -> int:
    # Case-sensitive on purpose: catalog names like "60MIN" fall through to 30.
    return 60 if "60min" in (package or "") else 30


def generate_recurring_sessions(
    client,
    today: Optional[date] = None,
    weeks: Optional[int] = None,
) -> List[schemas.SessionCreate]:
    """Expand a client's regular_slot into weekly bookings, earliest first."""
    today = today or date.today()
    weeks = weeks or get_settings().RECURRING_WEEKS
    slots, _ = parse_regular_slot(client.regular_slot)
    duration = duration_for_package(client.package)

    generated = []
    for weekday, slot_time in slots:
        first = next_weekday(today, weekday)
        for week in range(weeks):
            generated.append(
                schemas.SessionCreate(
                    client_id=client.id,
                    date=(first + timedelta(weeks=week)).isoformat(),
                    time=slot_time,
                    duration=duration,
                    package=client.package,
                    status="confirmed",
                    location=client.location,
                )
            )
    generated.sort(key=lambda s: (s.date, s.time))
    return generated


def book_recurring_sessions(
    db: Session,
    client: models.Client,
    today: Optional[date] = None,
) -> RecurringBookingReport:
    """
    Book the client's regular slot for the coming weeks.

    Best effort: failures are collected in the report, never raised.
    """
    report = RecurringBookingReport()
    _, report.skipped_tokens = parse_regular_slot(client.regular_slot)
    for token in report.skipped_tokens:
        logger.warning("Skipping unreadable regular slot %r for %s", token, client.name)

    for session_in in generate_recurring_sessions(client, today=today):
        try:
            report.sessions.append(schedule_session(db, session_in))
        except NoSessionsRemainingError as e:
            report.errors.append(f"{session_in.date} {session_in.time}: {e}")
            logger.warning("Stopped recurring bookings for %s: %s", client.name, e)
            break
        except PersistenceError as e:
            report.errors.append(f"{session_in.date} {session_in.time}: {e}")
            logger.error("Recurring booking failed for %s: %s", client.name, e)

    return report

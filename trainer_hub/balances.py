# trainer_hub/balances.py
import logging

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from trainer_hub import models
from trainer_hub.database import persistence_guard
from trainer_hub.errors import ClientNotFound

logger = logging.getLogger(__name__)


def get_client(db: Session, client_id: int) -> models.Client:
    client = db.get(models.Client, client_id)
    if client is None:
        raise ClientNotFound(f"Client {client_id} not found")
    return client


def current_sessions_left(db: Session, client_id: int) -> int:
    """Read sessions_left straight from the database, bypassing any loaded Client."""
    left = (
        db.query(models.Client.sessions_left)
        .filter(models.Client.id == client_id)
        .scalar()
    )
    if left is None:
        raise ClientNotFound(f"Client {client_id} not found")
    return left


def _floor_zero(expr):
    return case((expr < 0, 0), else_=expr)


def adjust_client_balance(
    db: Session,
    client_id: int,
    *,
    total_delta: int = 0,
    left_delta: int = 0,
    floor_at_zero: bool = False,
    cap_at_total: bool = False,
) -> models.Client:
    """
    Apply signed deltas to a client's session counters in one UPDATE.

    The new values are computed by the database from the stored ones, so two
    adjustments issued close together both land.
      - floor_at_zero: neither counter goes below 0
      - cap_at_total: sessions_left never exceeds total_sessions
    """
    new_total = models.Client.total_sessions + total_delta
    new_left = models.Client.sessions_left + left_delta
    if floor_at_zero:
        new_total = _floor_zero(new_total)
        new_left = _floor_zero(new_left)
    if cap_at_total:
        new_left = case(
            (new_left > models.Client.total_sessions, models.Client.total_sessions),
            else_=new_left,
        )

    values = {"sessions_left": new_left}
    if total_delta:
        values["total_sessions"] = new_total

    stmt = (
        update(models.Client)
        .where(models.Client.id == client_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    with persistence_guard(db, "update client session balance"):
        result = db.execute(stmt)
    if result.rowcount == 0:
        raise ClientNotFound(f"Client {client_id} not found")

    client = get_client(db, client_id)
    db.refresh(client)
    logger.info(
        "Adjusted balance for client %s (total %+d, left %+d) -> %s/%s",
        client_id, total_delta, left_delta, client.sessions_left, client.total_sessions,
    )
    return client


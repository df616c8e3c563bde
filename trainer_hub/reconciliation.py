# trainer_hub/reconciliation.py
import logging
import re
from datetime import date
from typing import Iterable, Optional

from trainer_hub import schemas
from trainer_hub.scheduler import is_session_completed

logger = logging.getLogger(__name__)

# Tried in order when the name is not in the catalog.
PACKAGE_SESSION_PATTERNS = (
    re.compile(r"^(\d+)x\s*PK", re.IGNORECASE),   # "5x PK 30MIN"
    re.compile(r"^(\d+)x\s*\(", re.IGNORECASE),   # "1x (60MIN)"
    re.compile(r"^(\d+)x\s*", re.IGNORECASE),     # "10x 30MIN Basic"
)
DEFAULT_IMPLIED_SESSIONS = 1


def sessions_implied_by_package_name(name: str, catalog: Iterable = ()) -> int:
    """
    How many sessions a package name stands for.

    An exact catalog name match wins; otherwise a leading "<N>x" count is read
    from the name; otherwise 1.
    """
    for package in catalog:
        if package.name == name:
            return package.sessions

    for pattern in PACKAGE_SESSION_PATTERNS:
        match = pattern.match(name or "")
        if match:
            return int(match.group(1))

    logger.debug("No session count found in package name %r", name)
    return DEFAULT_IMPLIED_SESSIONS


def session_counts(
    client,
    client_sessions: Iterable,
    candidate_package: Optional[str] = None,
    catalog: Iterable = (),
    today: Optional[date] = None,
) -> schemas.SessionCounts:
    """
    Session counters to show for a client, optionally previewing a package swap.

    With the client's own package the stored counters are returned as-is.
    With a different package the totals are recomputed from that package and
    flagged as a preview; nothing is written.
    """
    completed = sum(1 for s in client_sessions if is_session_completed(s, today))

    if candidate_package is None or candidate_package == client.package:
        return schemas.SessionCounts(
            total_sessions=client.total_sessions,
            sessions_left=client.sessions_left,
            completed_sessions=completed,
            is_preview=False,
        )

    preview_total = sessions_implied_by_package_name(candidate_package, catalog)
    return schemas.SessionCounts(
        total_sessions=preview_total,
        sessions_left=max(0, preview_total - completed),
        completed_sessions=completed,
        is_preview=True,
    )

"""
Module: claims_kernel.selectors.base
Responsibility: Abstract base class for the read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ (for DTOs and enumerations).  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - Selectors return DTOs or plain computed values, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from datetime import UTC, date, datetime, time

from sqlalchemy.orm import Session


def as_utc(value: date | datetime, end_of_day: bool = False) -> datetime:
    """
    Normalize a query bound to an aware UTC datetime.

    Naive datetimes are taken to be UTC already.  A date covers the whole
    day: its start, or its last instant when ``end_of_day`` is set.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=UTC)


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session

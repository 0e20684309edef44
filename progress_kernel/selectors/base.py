"""
Module: progress_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  Selectors NEVER create, modify or delete data.

Invariants enforced:
    - Read-only: selectors use the caller's Session and never call add(),
      delete(), commit() or flush().
    - Selectors return frozen domain objects, not ORM instances, so the
      engines only ever see immutable snapshots.
    - The caller owns the session and its transaction, which is what makes
      a multi-selector read a consistent snapshot.
"""

from abc import ABC
from datetime import datetime, timezone
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from progress_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accept a Session from the caller, perform read-only queries and
        return domain objects.
    """

    def __init__(self, session: Session):
        self.session = session

"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors form the read side of the kernel, giving structured access to
    recorded data without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/dtos.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return dataclasses or computed values,
      never raw ORM model instances.
    - Session ownership: the caller owns the session and its transaction scope.
"""

from abc import ABC
from decimal import Decimal
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.db.types import ZERO, round_money

ModelType = TypeVar("ModelType", bound=Base)


def as_money(value) -> Decimal:
    """Normalize an aggregate from the driver to a two-place Decimal.

    SUM over no rows is NULL, and PostgreSQL sums carry extra exponents.
    """
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return round_money(value)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

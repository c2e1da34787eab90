"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Services receive a SQLAlchemy
    ``Session`` from the caller.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Transaction boundaries:
    AccountRegistry only flushes; the caller commits.  LedgerEngine owns
    its own boundary through ``unit_of_work`` (commit by default, or a
    savepoint of the caller's transaction with ``auto_commit=False``).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  One session per
        thread; sessions are never shared between workers.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

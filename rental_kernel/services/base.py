"""
BaseService -- abstract base for kernel services that write inside the
caller's transaction.

Responsibility:
    Provides the common constructor and session-handling contract for
    flush-only services (LedgerService).  These services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    RentalLifecycleService is the unit-of-work owner: it composes flush-only
    services and commits or rolls back once per public call.

Failure modes:
    - If a subclass calls ``session.commit()``, a ledger posting could persist
      without the status change it belongs to.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from rental_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` -- the caller controls transaction
          boundaries.
    """

    def __init__(self, session: Session):
        self.session = session

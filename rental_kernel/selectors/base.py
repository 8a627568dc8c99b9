"""
Module: rental_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, not ORM rows.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from rental_kernel.db.base import Base
from rental_kernel.exceptions import InvalidPaginationError

ModelType = TypeVar("ModelType", bound=Base)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(
        self,
        session: Session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.session = session
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def _resolve_page(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        """Apply defaults and validate a 1-based page request."""
        page = 1 if page is None else page
        page_size = self.default_page_size if page_size is None else page_size
        if page < 1 or page_size < 1 or page_size > self.max_page_size:
            raise InvalidPaginationError(page, page_size, self.max_page_size)
        return page, page_size

    def _count(self, stmt: Select) -> int:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        return self.session.execute(count_stmt).scalar_one()

"""ORM models for the rental kernel."""

from rental_kernel.models.ledger import LedgerTransaction
from rental_kernel.models.notification import Notification
from rental_kernel.models.rental import Rental
from rental_kernel.models.tool import Tool
from rental_kernel.models.user import User, UserOrg

__all__ = [
    "LedgerTransaction",
    "Notification",
    "Rental",
    "Tool",
    "User",
    "UserOrg",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Return every mapped class; importing this package registers them on Base.metadata."""
    return (User, UserOrg, Tool, Rental, LedgerTransaction, Notification)

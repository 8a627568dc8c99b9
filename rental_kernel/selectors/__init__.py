"""Read-only selectors over rentals and the ledger."""

from rental_kernel.selectors.base import BaseSelector
from rental_kernel.selectors.ledger_selector import LedgerSelector
from rental_kernel.selectors.rental_selector import RentalSelector

__all__ = ["BaseSelector", "LedgerSelector", "RentalSelector"]

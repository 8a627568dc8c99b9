"""Kernel services: the lifecycle unit of work and the flush-only ledger writer."""

from rental_kernel.services.ledger_service import LedgerService
from rental_kernel.services.notification_service import (
    EmailSender,
    LoggingEmailSender,
    NotificationService,
)
from rental_kernel.services.rental_lifecycle_service import RentalLifecycleService

__all__ = [
    "EmailSender",
    "LedgerService",
    "LoggingEmailSender",
    "NotificationService",
    "RentalLifecycleService",
]

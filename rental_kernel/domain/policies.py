"""
Balance-floor policy.

Responsibility:
    Decide whether a renter may take on a new charge given their current
    ledger balance.  Injected into RentalLifecycleService so deployments can
    run with or without a floor.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The caller supplies the balance.

Failure modes:
    - InsufficientBalanceError when ``balance - charge`` would drop below
      the floor.
"""

from __future__ import annotations

from dataclasses import dataclass

from rental_kernel.exceptions import InsufficientBalanceError


@dataclass(frozen=True)
class BalanceFloorPolicy:
    """Minimum balance a renter must keep after a charge.

    ``min_allowed_balance_cents=None`` disables the check.  Balances are
    signed: a floor of -5000 lets a renter owe up to $50.
    """

    min_allowed_balance_cents: int | None = None

    @property
    def enabled(self) -> bool:
        return self.min_allowed_balance_cents is not None

    def allows(self, balance_cents: int, charge_cents: int) -> bool:
        if self.min_allowed_balance_cents is None:
            return True
        return balance_cents - charge_cents >= self.min_allowed_balance_cents

    def check(self, balance_cents: int, charge_cents: int, user_id: object = "") -> None:
        """Raise InsufficientBalanceError if the charge would breach the floor."""
        if not self.allows(balance_cents, charge_cents):
            raise InsufficientBalanceError(
                user_id=str(user_id),
                balance_cents=balance_cents,
                charge_cents=charge_cents,
                floor_cents=self.min_allowed_balance_cents,
            )

    @classmethod
    def disabled(cls) -> BalanceFloorPolicy:
        return cls(None)

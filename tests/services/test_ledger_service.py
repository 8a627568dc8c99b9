"""Tests for LedgerService postings and balance reconciliation."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from rental_kernel.domain.dtos import TransactionType
from rental_kernel.exceptions import InvalidInputError, MembershipNotFoundError
from rental_kernel.models.user import UserOrg
from rental_kernel.selectors.ledger_selector import LedgerSelector
from rental_kernel.services.ledger_service import LedgerService


@pytest.fixture
def ledger(session, clock):
    return LedgerService(session, clock=clock)


@pytest.fixture
def selector(session):
    return LedgerSelector(session)


def _post(ledger, seed, amount, kind=TransactionType.ADJUSTMENT, user_id=None):
    return ledger.post_transaction(
        seed.org_id, user_id or seed.renter_id, amount, kind, None, "Manual adjustment", seed.owner_id,
    )


class TestPostTransaction:

    def test_posting_updates_cached_balance(self, ledger, selector, seed, session, clock):
        txn = _post(ledger, seed, 2500)
        _post(ledger, seed, -700)
        session.commit()

        assert txn.charged_on == clock.today()
        assert txn.created_by_id == seed.owner_id
        assert selector.balance(seed.org_id, seed.renter_id) == 1800
        assert selector.cached_balance(seed.org_id, seed.renter_id) == 1800

    def test_zero_amount_rejected(self, ledger, seed):
        with pytest.raises(InvalidInputError):
            _post(ledger, seed, 0)

    def test_non_member_rejected(self, ledger, seed):
        with pytest.raises(MembershipNotFoundError):
            _post(ledger, seed, 100, user_id=seed.outsider_id)

    def test_posting_is_logged(self, ledger, seed, captured_logs):
        _post(ledger, seed, 300, TransactionType.REFUND)

        posted = [r for r in captured_logs() if r["message"] == "ledger_transaction_posted"]
        assert posted[0]["amount_cents"] == 300
        assert posted[0]["transaction_type"] == "REFUND"

    def test_list_transactions_pages(self, ledger, selector, seed, session):
        for amount in (100, 200, 300):
            _post(ledger, seed, amount)
        session.commit()

        page = selector.list_transactions(seed.org_id, seed.renter_id, page=1, page_size=2)

        assert page.total_count == 3
        assert len(page.items) == 2
        assert page.has_next
        assert all(e.transaction_type is TransactionType.ADJUSTMENT for e in page.items)

    def test_cached_balance_requires_membership(self, selector, seed):
        with pytest.raises(MembershipNotFoundError):
            selector.cached_balance(uuid4(), seed.renter_id)


class TestReconcile:

    def test_consistent_balance_left_alone(self, ledger, seed, session):
        _post(ledger, seed, 1200)
        session.commit()

        result = ledger.reconcile_balance(seed.org_id, seed.renter_id)

        assert result.was_consistent
        assert result.ledger_balance_cents == 1200

    def test_drift_detected_and_repaired(self, ledger, selector, seed, session, captured_logs):
        _post(ledger, seed, 1200)
        session.execute(
            update(UserOrg)
            .where(UserOrg.org_id == seed.org_id, UserOrg.user_id == seed.renter_id)
            .values(balance_cents=5000)
        )
        session.commit()

        result = ledger.reconcile_balance(seed.org_id, seed.renter_id, actor_id=seed.owner_id)
        session.commit()

        assert result.drift_cents == 3800
        assert not result.was_consistent
        assert selector.cached_balance(seed.org_id, seed.renter_id) == 1200
        assert any(r["message"] == "ledger_balance_drift_detected" for r in captured_logs())

"""
Tests for return-date renegotiation.

A change is a proposal: the agreed dates, cost and status stay as they were
until the owner approves it or the renter acknowledges the owner's
counter-proposal.  Committing a proposal posts the cost difference so the
renter's postings for the rental always equal -total_cost_cents.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from rental_kernel.domain.dtos import RentalStatus, TransactionType
from rental_kernel.exceptions import (
    CounterProposalError,
    DateRangeError,
    InvalidDateError,
    InvalidTransitionError,
    RentalConflictError,
    UnauthorizedError,
)
from rental_kernel.models.notification import Notification
from rental_kernel.selectors.ledger_selector import LedgerSelector

START = "2024-01-15"
END = "2024-01-25"


def _scheduled(service, seed):
    rental = service.create_rental_request(seed.renter_id, seed.tool_id, seed.org_id, START, END)
    service.approve_rental_request(seed.owner_id, rental.id)
    return service.finalize_rental_request(seed.renter_id, rental.id).rental


def _active(service, seed):
    rental = _scheduled(service, seed)
    return service.activate_rental(seed.owner_id, rental.id)


def _renter_net(session, rental):
    return sum(
        e.amount_cents
        for e in LedgerSelector(session).transactions_for_rental(rental.id)
        if e.user_id == rental.renter_id
    )


@pytest.fixture
def active_rental(service, seed):
    return _active(service, seed)


@pytest.fixture
def extension(service, seed, active_rental):
    """Renter asks to keep the drill until the 28th (14 days, $90)."""
    return service.change_rental_dates(
        seed.renter_id, active_rental.id,
        new_end_date="2024-01-28", old_end_date=END,
    )


# =============================================================================
# Proposing
# =============================================================================


class TestProposeChange:

    def test_proposal_leaves_agreement_untouched(self, extension, active_rental):
        assert extension.status is RentalStatus.RETURN_DATE_CHANGED
        assert extension.status_before_change is RentalStatus.ACTIVE
        assert extension.end_date == active_rental.end_date
        assert extension.total_cost_cents == 8500
        assert extension.proposed_end_date == date(2024, 1, 28)
        assert extension.proposed_start_date == date(2024, 1, 15)
        assert extension.proposed_cost_cents == 9000

    def test_owner_notified_without_email(self, extension, seed, session, email_sender):
        types = [
            n.attributes["type"]
            for n in session.scalars(select(Notification).where(Notification.user_id == seed.owner_id))
        ]
        assert "RETURN_DATE_CHANGE_REQUEST" in types
        assert all("Date" not in subject for _, subject, _ in email_sender.sent)

    def test_no_posting_until_committed(self, extension, session):
        assert _renter_net(session, extension) == -8500

    def test_start_date_fixed_after_pickup(self, service, seed, active_rental):
        with pytest.raises(DateRangeError):
            service.change_rental_dates(
                seed.renter_id, active_rental.id, new_start_date="2024-01-16",
            )

    def test_stale_old_dates_refused(self, service, seed, active_rental):
        with pytest.raises(RentalConflictError):
            service.change_rental_dates(
                seed.renter_id, active_rental.id,
                new_end_date="2024-01-28", old_end_date="2024-01-24",
            )
        assert service.get_rental(seed.renter_id, active_rental.id).status is RentalStatus.ACTIVE

    def test_unchanged_dates_refused(self, service, seed, active_rental):
        with pytest.raises(DateRangeError):
            service.change_rental_dates(seed.renter_id, active_rental.id, new_end_date=END)

    def test_end_before_start_refused(self, service, seed, active_rental):
        with pytest.raises(DateRangeError):
            service.change_rental_dates(seed.renter_id, active_rental.id, new_end_date="2024-01-10")

    def test_malformed_date_refused(self, service, seed, active_rental):
        with pytest.raises(InvalidDateError):
            service.change_rental_dates(seed.renter_id, active_rental.id, new_end_date="28 Jan 2024")

    def test_bystander_cannot_propose(self, service, seed, active_rental):
        with pytest.raises(UnauthorizedError):
            service.change_rental_dates(seed.member_id, active_rental.id, new_end_date="2024-01-28")

    def test_pending_request_cannot_change_dates(self, service, seed):
        rental = service.create_rental_request(seed.renter_id, seed.tool_id, seed.org_id, START, END)

        with pytest.raises(InvalidTransitionError):
            service.change_rental_dates(seed.renter_id, rental.id, new_end_date="2024-01-28")

    def test_renter_may_revise_pending_proposal(self, service, seed, extension):
        revised = service.change_rental_dates(seed.renter_id, extension.id, new_end_date="2024-01-30")

        assert revised.status is RentalStatus.RETURN_DATE_CHANGED
        assert revised.status_before_change is RentalStatus.ACTIVE
        assert revised.proposed_end_date == date(2024, 1, 30)
        assert revised.end_date == date(2024, 1, 25)

    def test_owner_cannot_revise_pending_proposal(self, service, seed, extension):
        with pytest.raises(UnauthorizedError):
            service.change_rental_dates(seed.owner_id, extension.id, new_end_date="2024-01-30")


# =============================================================================
# Approve / cancel
# =============================================================================


class TestApproveOrWithdraw:

    def test_approve_commits_dates_and_posts_difference(self, service, seed, session, extension):
        approved = service.approve_return_date_change(seed.owner_id, extension.id)

        assert approved.status is RentalStatus.ACTIVE
        assert approved.end_date == date(2024, 1, 28)
        assert approved.last_agreed_end_date == date(2024, 1, 28)
        assert approved.total_cost_cents == 9000
        assert approved.proposed_end_date is None
        assert approved.status_before_change is None

        entries = LedgerSelector(session).transactions_for_rental(extension.id)
        adjustments = [e.amount_cents for e in entries if e.transaction_type is TransactionType.ADJUSTMENT]
        assert adjustments == [-500]
        assert _renter_net(session, approved) == -approved.total_cost_cents
        assert LedgerSelector(session).cached_balance(seed.org_id, seed.renter_id) == -9000

    def test_renter_cannot_approve(self, service, seed, extension):
        with pytest.raises(UnauthorizedError):
            service.approve_return_date_change(seed.renter_id, extension.id)

    def test_approve_after_new_end_lands_overdue(self, service, seed, clock, active_rental):
        clock.set_today(date(2024, 2, 1))
        proposal = service.change_rental_dates(seed.renter_id, active_rental.id, new_end_date="2024-01-30")

        approved = service.approve_return_date_change(seed.owner_id, proposal.id)

        assert approved.status is RentalStatus.OVERDUE
        assert approved.total_cost_cents == 11000

    def test_shortening_credits_renter(self, service, seed, session, active_rental):
        proposal = service.change_rental_dates(seed.owner_id, active_rental.id, new_end_date="2024-01-21")

        approved = service.approve_return_date_change(seed.owner_id, proposal.id)

        assert approved.total_cost_cents == 4500
        assert LedgerSelector(session).balance(seed.org_id, seed.renter_id) == -4500

    def test_withdraw_restores_exact_prior_state(self, service, seed, extension, active_rental):
        restored = service.cancel_return_date_change(seed.renter_id, extension.id)

        assert restored.status is RentalStatus.ACTIVE
        assert restored.start_date == active_rental.start_date
        assert restored.end_date == active_rental.end_date
        assert restored.total_cost_cents == active_rental.total_cost_cents
        assert restored.last_agreed_end_date == active_rental.last_agreed_end_date
        assert restored.proposed_end_date is None
        assert restored.proposed_cost_cents is None

    def test_withdraw_from_overdue_stays_overdue(self, service, seed, clock, session, active_rental):
        from rental_batch.tasks.overdue_sweep import OverdueSweepTask

        clock.set_today(date(2024, 1, 27))
        OverdueSweepTask().run(session, clock.today())
        session.commit()
        proposal = service.change_rental_dates(seed.renter_id, active_rental.id, new_end_date="2024-01-31")

        restored = service.cancel_return_date_change(seed.renter_id, proposal.id)

        assert proposal.status_before_change is RentalStatus.OVERDUE
        assert restored.status is RentalStatus.OVERDUE
        assert restored.end_date == date(2024, 1, 25)

    def test_owner_cannot_withdraw(self, service, seed, extension):
        with pytest.raises(UnauthorizedError):
            service.cancel_return_date_change(seed.owner_id, extension.id)

    def test_withdraw_without_proposal(self, service, seed, active_rental):
        with pytest.raises(InvalidTransitionError):
            service.cancel_return_date_change(seed.renter_id, active_rental.id)


class TestChangeBeforePickup:

    def test_scheduled_change_resumes_scheduled(self, service, seed, session):
        rental = _scheduled(service, seed)
        proposal = service.change_rental_dates(
            seed.renter_id, rental.id,
            new_start_date="2024-01-16", new_end_date="2024-01-22",
            old_start_date=START, old_end_date=END,
        )
        assert proposal.status_before_change is RentalStatus.SCHEDULED

        approved = service.approve_return_date_change(seed.owner_id, rental.id)

        assert approved.status is RentalStatus.SCHEDULED
        assert approved.start_date == date(2024, 1, 16)
        assert approved.end_date == date(2024, 1, 22)
        assert approved.total_cost_cents == 4500
        assert _renter_net(session, approved) == -4500

    def test_scheduled_withdraw_restores_scheduled(self, service, seed):
        rental = _scheduled(service, seed)
        service.change_rental_dates(seed.renter_id, rental.id, new_start_date="2024-01-16")

        restored = service.cancel_return_date_change(seed.renter_id, rental.id)

        assert restored.status is RentalStatus.SCHEDULED
        assert restored.start_date == date(2024, 1, 15)


# =============================================================================
# Reject with counter-proposal / acknowledge
# =============================================================================


class TestCounterProposal:

    def test_reject_records_counter(self, service, seed, session, email_sender, extension):
        rejected = service.reject_return_date_change(
            seed.owner_id, extension.id, reason="Need it for a job", counter_new_end_date="2024-01-26",
        )

        assert rejected.status is RentalStatus.RETURN_DATE_CHANGE_REJECTED
        assert rejected.rejection_reason == "Need it for a job"
        assert rejected.proposed_end_date == date(2024, 1, 26)
        assert rejected.proposed_cost_cents == 9500
        assert rejected.end_date == date(2024, 1, 25)
        assert rejected.total_cost_cents == 8500

        to, subject, body = email_sender.sent[-1]
        assert to == "ryan.renter@example.com"
        assert subject == "Return Date Extension Rejected: Cordless Drill"
        assert "2024-01-26" in body
        assert "$95.00" in body

    def test_counter_equal_to_request_refused(self, service, seed, extension):
        with pytest.raises(CounterProposalError):
            service.reject_return_date_change(
                seed.owner_id, extension.id, reason="No", counter_new_end_date="2024-01-28",
            )

        unchanged = service.get_rental(seed.owner_id, extension.id)
        assert unchanged.status is RentalStatus.RETURN_DATE_CHANGED
        assert unchanged.proposed_end_date == date(2024, 1, 28)

    def test_counter_before_start_refused(self, service, seed, extension):
        with pytest.raises(CounterProposalError):
            service.reject_return_date_change(
                seed.owner_id, extension.id, reason="No", counter_new_end_date="2024-01-14",
            )

    def test_renter_cannot_reject(self, service, seed, extension):
        with pytest.raises(UnauthorizedError):
            service.reject_return_date_change(
                seed.renter_id, extension.id, reason="", counter_new_end_date="2024-01-26",
            )

    def test_acknowledge_commits_counter(self, service, seed, session, extension):
        service.reject_return_date_change(
            seed.owner_id, extension.id, reason="Need it", counter_new_end_date="2024-01-26",
        )

        acknowledged = service.acknowledge_return_date_rejection(seed.renter_id, extension.id)

        assert acknowledged.status is RentalStatus.ACTIVE
        assert acknowledged.end_date == date(2024, 1, 26)
        assert acknowledged.last_agreed_end_date == date(2024, 1, 26)
        assert acknowledged.total_cost_cents == 9500
        assert _renter_net(session, acknowledged) == -9500

    def test_owner_cannot_acknowledge(self, service, seed, extension):
        service.reject_return_date_change(
            seed.owner_id, extension.id, reason="Need it", counter_new_end_date="2024-01-26",
        )

        with pytest.raises(UnauthorizedError):
            service.acknowledge_return_date_rejection(seed.owner_id, extension.id)

    def test_rejected_proposal_cannot_be_withdrawn(self, service, seed, extension):
        service.reject_return_date_change(
            seed.owner_id, extension.id, reason="Need it", counter_new_end_date="2024-01-26",
        )

        with pytest.raises(InvalidTransitionError):
            service.cancel_return_date_change(seed.renter_id, extension.id)

    def test_settlement_matches_renegotiated_total(self, service, seed, session, extension):
        service.reject_return_date_change(
            seed.owner_id, extension.id, reason="Need it", counter_new_end_date="2024-01-26",
        )
        service.acknowledge_return_date_rejection(seed.renter_id, extension.id)

        done = service.complete_rental(seed.owner_id, extension.id, return_condition="Good")

        selector = LedgerSelector(session)
        assert done.total_cost_cents == 9500
        assert selector.balance(seed.org_id, seed.owner_id) == 9500
        assert selector.balance(seed.org_id, seed.renter_id) == -9500
        for user_id in (seed.owner_id, seed.renter_id):
            assert selector.cached_balance(seed.org_id, user_id) == selector.balance(seed.org_id, user_id)

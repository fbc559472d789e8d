"""
Balance calculator tests.

Verifies:
- outstanding = max(0, effective price - sum of payments)
- final price overrides the estimate
- refunds (negative payments) net out
"""

import pytest

from repairdesk.errors import NotFoundError
from repairdesk.services import balance_service, payment_service
from repairdesk.services.balance_service import calculate_balance


class TestCalculateBalance:

    def test_estimate_used_without_final_price(self):
        summary = calculate_balance(10000, None, [6000])
        assert summary.effective_price_cents == 10000
        assert summary.total_paid_cents == 6000
        assert summary.outstanding_cents == 4000
        assert summary.is_paid is False

    def test_final_price_overrides_estimate(self):
        summary = calculate_balance(10000, 7000, [7000])
        assert summary.effective_price_cents == 7000
        assert summary.outstanding_cents == 0
        assert summary.is_paid is True

    def test_zero_final_price_is_not_ignored(self):
        summary = calculate_balance(10000, 0, [])
        assert summary.effective_price_cents == 0
        assert summary.is_paid is True

    def test_overpayment_clamps_to_zero(self):
        summary = calculate_balance(5000, None, [3000, 3000])
        assert summary.total_paid_cents == 6000
        assert summary.outstanding_cents == 0

    def test_refunds_net_out(self):
        summary = calculate_balance(5000, None, [5000, -2000])
        assert summary.total_paid_cents == 3000
        assert summary.outstanding_cents == 2000


class TestTicketBalance:

    def test_recomputed_after_each_payment(self, db_session, ticket, staff):
        assert balance_service.get_ticket_balance(ticket.id).outstanding_cents == 10000
        for amount, expected in ((2500, 7500), (2500, 5000), (6000, 0)):
            payment_service.record_payment(ticket.id, amount, "CARD", staff)
            assert balance_service.get_ticket_balance(ticket.id).outstanding_cents == expected

    def test_unknown_ticket(self, db_session):
        with pytest.raises(NotFoundError):
            balance_service.get_ticket_balance(999)

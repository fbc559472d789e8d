"""
Return workflow tests.

Verifies:
- Eligibility: status, warranty window, one active return per ticket
- Scenario B: expired window is rejected with RETURN_WINDOW_EXPIRED
- Scenario C: approval not required -> APPROVED at creation, ticket RETURNED
- original_ticket_status snapshot survives approval
- The partial unique index settles a race the service check missed
- Approval posts the refund payment + journal entry and optionally restocks
- An approver may lower the refund; damaged parts are written off, not restocked
"""

from datetime import timedelta

import pytest

from conftest import advance
from repairdesk.context import Policy
from repairdesk.errors import (
    AuthorizationError,
    ConflictError,
    DomainRuleViolation,
    NotFoundError,
    ValidationError,
)
from repairdesk.models import (
    InventoryReason,
    InventoryTransaction,
    JournalEntry,
    JournalEntryType,
    JournalReferenceType,
    Payment,
    Return,
    ReturnStatus,
    TicketStatus,
)
from repairdesk.services import (
    balance_service,
    inventory_service,
    payment_service,
    return_service,
    ticket_service,
)


NO_APPROVAL = Policy(require_return_approval=False)


# =============================================================================
# ELIGIBILITY
# =============================================================================

class TestEligibility:

    def test_received_ticket_is_not_returnable(self, db_session, ticket, staff, policy):
        with pytest.raises(DomainRuleViolation) as exc:
            return_service.create_return(ticket.id, "Changed mind", 0, staff, policy)
        assert exc.value.code == "TICKET_NOT_RETURNABLE"

    def test_scenario_b_window_expired(self, db_session, repaired_ticket, staff):
        policy = Policy(return_window_days=14)
        later = repaired_ticket.completed_at + timedelta(days=20)

        with pytest.raises(DomainRuleViolation) as exc:
            return_service.create_return(repaired_ticket.id, "Broke again", 0, staff, policy, now=later)

        assert exc.value.code == "RETURN_WINDOW_EXPIRED"
        assert db_session.query(Return).count() == 0
        assert ticket_service.get_ticket(repaired_ticket.id).status == TicketStatus.REPAIRED

    def test_inside_window_is_accepted(self, db_session, repaired_ticket, staff):
        policy = Policy(return_window_days=14)
        later = repaired_ticket.completed_at + timedelta(days=13)
        doc = return_service.create_return(repaired_ticket.id, "Broke again", 0, staff, policy, now=later)
        assert doc.status == ReturnStatus.PENDING

    def test_zero_window_disables_check(self, db_session, repaired_ticket, staff):
        policy = Policy(return_window_days=0)
        later = repaired_ticket.completed_at + timedelta(days=400)
        doc = return_service.create_return(repaired_ticket.id, "Broke again", 0, staff, policy, now=later)
        assert doc.id is not None

    def test_validate_is_a_dry_run(self, db_session, repaired_ticket, policy):
        result = return_service.validate_return_eligibility(repaired_ticket.id, policy)
        assert result["eligible"] is True
        assert result["ticket_status"] == "REPAIRED"
        assert result["effective_price_cents"] == 10000
        assert result["deadline"].endswith("Z")
        assert db_session.query(Return).count() == 0

    def test_technician_cannot_create(self, db_session, repaired_ticket, technician, policy):
        with pytest.raises(AuthorizationError):
            return_service.create_return(repaired_ticket.id, "Broke again", 0, technician, policy)

    def test_unknown_ticket(self, db_session, staff, policy):
        with pytest.raises(NotFoundError):
            return_service.create_return(999, "Broke again", 0, staff, policy)


# =============================================================================
# CREATION
# =============================================================================

class TestCreateReturn:

    def test_pending_when_approval_required(self, db_session, repaired_ticket, staff, policy, events):
        doc = return_service.create_return(repaired_ticket.id, "Screen flickers", 4000, staff, policy)

        assert doc.status == ReturnStatus.PENDING
        assert doc.original_ticket_status == TicketStatus.REPAIRED
        assert doc.refund_amount_cents == 4000
        assert ticket_service.get_ticket(repaired_ticket.id).status == TicketStatus.REPAIRED
        assert db_session.query(Payment).filter(Payment.amount_cents < 0).count() == 0
        assert "return.created" in events.types()
        assert "return.approved" not in events.types()

    def test_scenario_c_auto_approved_full_refund(self, db_session, repaired_ticket, staff, admin):
        payment_service.record_payment(repaired_ticket.id, 10000, "CASH", staff)

        doc = return_service.create_return(repaired_ticket.id, "Customer unhappy", 10000, admin, NO_APPROVAL)

        assert doc.status == ReturnStatus.APPROVED
        assert doc.handled_by == admin.id
        assert doc.original_ticket_status == TicketStatus.REPAIRED
        assert ticket_service.get_ticket(repaired_ticket.id).status == TicketStatus.RETURNED

        refund = db_session.get(Payment, doc.refund_payment_id)
        assert refund.amount_cents == -10000
        assert refund.return_id == doc.id

        journal = db_session.query(JournalEntry).filter_by(type=JournalEntryType.REFUND).one()
        assert journal.amount_cents == 10000
        assert journal.reference_type == JournalReferenceType.PAYMENT
        assert journal.reference_id == refund.id

    def test_refund_cannot_exceed_price(self, db_session, repaired_ticket, staff, policy):
        with pytest.raises(ValidationError):
            return_service.create_return(repaired_ticket.id, "Broke again", 10001, staff, policy)

    def test_negative_refund_rejected(self, db_session, repaired_ticket, staff, policy):
        with pytest.raises(ValidationError):
            return_service.create_return(repaired_ticket.id, "Broke again", -1, staff, policy)

    def test_reason_required(self, db_session, repaired_ticket, staff, policy):
        with pytest.raises(ValidationError):
            return_service.create_return(repaired_ticket.id, "   ", 0, staff, policy)

    def test_partial_refund_disallowed(self, db_session, repaired_ticket, staff):
        policy = Policy(allow_partial_refunds=False)
        with pytest.raises(DomainRuleViolation) as exc:
            return_service.create_return(repaired_ticket.id, "Broke again", 5000, staff, policy)
        assert exc.value.code == "PARTIAL_REFUND_DISALLOWED"

        full = return_service.create_return(repaired_ticket.id, "Broke again", 10000, staff, policy)
        assert full.refund_amount_cents == 10000

    def test_second_active_return_conflicts(self, db_session, repaired_ticket, staff, policy):
        return_service.create_return(repaired_ticket.id, "First", 0, staff, policy)
        with pytest.raises(ConflictError) as exc:
            return_service.create_return(repaired_ticket.id, "Second", 0, staff, policy)
        assert exc.value.code == "ACTIVE_RETURN_EXISTS"

    def test_race_is_settled_by_unique_index(self, db_session, repaired_ticket, staff, policy, monkeypatch):
        return_service.create_return(repaired_ticket.id, "First", 0, staff, policy)

        # Simulate a concurrent request whose check ran before the first insert.
        monkeypatch.setattr(return_service, "find_active_return", lambda ticket_id: None)

        with pytest.raises(ConflictError) as exc:
            return_service.create_return(repaired_ticket.id, "Second", 0, staff, policy)

        assert exc.value.code == "ACTIVE_RETURN_EXISTS"
        assert db_session.query(Return).filter_by(ticket_id=repaired_ticket.id).count() == 1


# =============================================================================
# APPROVAL
# =============================================================================

class TestApproveReturn:

    def test_approval_applies_effects_and_keeps_snapshot(self, db_session, repaired_ticket, staff, admin, policy, events):
        payment_service.record_payment(repaired_ticket.id, 10000, "CARD", staff)
        ticket_service.change_status(repaired_ticket.id, TicketStatus.COMPLETED, staff)

        doc = return_service.create_return(repaired_ticket.id, "Defect", 3000, staff, policy)
        assert doc.original_ticket_status == TicketStatus.COMPLETED
        events.clear()

        approved = return_service.approve_return(doc.id, admin, policy, refund_method="CARD", notes="Refunded to card")

        assert approved.status == ReturnStatus.APPROVED
        assert approved.original_ticket_status == TicketStatus.COMPLETED
        assert approved.notes == "Refunded to card"
        assert approved.handled_at is not None
        assert ticket_service.get_ticket(repaired_ticket.id).status == TicketStatus.RETURNED

        refund = db_session.get(Payment, approved.refund_payment_id)
        assert refund.amount_cents == -3000
        assert refund.method.value == "CARD"
        assert "return.approved" in events.types()

    def test_zero_refund_posts_no_payment(self, db_session, repaired_ticket, staff, admin, policy):
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        approved = return_service.approve_return(doc.id, admin, policy)
        assert approved.refund_payment_id is None
        assert db_session.query(Payment).count() == 0

    def test_staff_cannot_approve(self, db_session, repaired_ticket, staff, policy):
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        with pytest.raises(AuthorizationError):
            return_service.approve_return(doc.id, staff, policy)
        assert return_service.get_return(doc.id).status == ReturnStatus.PENDING

    def test_cannot_approve_twice(self, db_session, repaired_ticket, staff, admin, policy):
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(doc.id, admin, policy)
        with pytest.raises(DomainRuleViolation) as exc:
            return_service.approve_return(doc.id, admin, policy)
        assert exc.value.code == "RETURN_NOT_PENDING"

    def test_restock_on_approval(self, db_session, ticket, part, staff, admin):
        inventory_service.add_part_to_ticket(ticket.id, part.id, 2, staff, Policy())
        advance(ticket.id, admin, TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED)
        policy = Policy(auto_restock_on_return=True)

        doc = return_service.create_return(ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(doc.id, admin, policy)

        assert inventory_service.get_part(part.id).quantity == 5
        restock = (
            db_session.query(InventoryTransaction)
            .filter_by(reason=InventoryReason.RETURN_RESTOCK)
            .one()
        )
        assert restock.quantity == 2
        assert restock.return_id == doc.id
        assert inventory_service.reconcile_parts() == []

    def test_no_restock_by_default(self, db_session, ticket, part, staff, admin, policy):
        inventory_service.add_part_to_ticket(ticket.id, part.id, 2, staff, policy)
        advance(ticket.id, admin, TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED)

        doc = return_service.create_return(ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(doc.id, admin, policy)

        assert inventory_service.get_part(part.id).quantity == 3

    def test_approver_can_lower_refund(self, db_session, repaired_ticket, staff, admin, policy):
        payment_service.record_payment(repaired_ticket.id, 10000, "CASH", staff)
        doc = return_service.create_return(repaired_ticket.id, "Defect", 6000, staff, policy)

        approved = return_service.approve_return(doc.id, admin, policy, refund_amount_cents="4000")

        assert approved.refund_amount_cents == 6000
        assert approved.refunded_amount_cents == 4000
        refund = db_session.get(Payment, approved.refund_payment_id)
        assert refund.amount_cents == -4000
        journal = db_session.query(JournalEntry).filter_by(type=JournalEntryType.REFUND).one()
        assert journal.amount_cents == 4000

    @pytest.mark.parametrize("amount", [0, -100, 6001])
    def test_refund_override_bounds(self, db_session, repaired_ticket, staff, admin, policy, amount):
        doc = return_service.create_return(repaired_ticket.id, "Defect", 6000, staff, policy)
        with pytest.raises(ValidationError):
            return_service.approve_return(doc.id, admin, policy, refund_amount_cents=amount)

        unchanged = return_service.get_return(doc.id)
        assert unchanged.status == ReturnStatus.PENDING
        assert unchanged.refund_payment_id is None
        assert db_session.query(Payment).count() == 0

    def test_refund_override_respects_partial_policy(self, db_session, repaired_ticket, staff, admin):
        policy = Policy(allow_partial_refunds=False)
        doc = return_service.create_return(repaired_ticket.id, "Defect", 10000, staff, policy)
        with pytest.raises(DomainRuleViolation) as exc:
            return_service.approve_return(doc.id, admin, policy, refund_amount_cents=5000)
        assert exc.value.code == "PARTIAL_REFUND_DISALLOWED"

    def test_already_refunded_return_is_not_refunded_again(self, db_session, repaired_ticket, staff, admin, policy):
        payment = payment_service.record_payment(repaired_ticket.id, 10000, "CASH", staff)
        doc = return_service.create_return(repaired_ticket.id, "Defect", 3000, staff, policy)
        doc.refund_payment_id = payment.id
        db_session.commit()

        with pytest.raises(DomainRuleViolation) as exc:
            return_service.approve_return(doc.id, admin, policy)
        assert exc.value.code == "RETURN_ALREADY_REFUNDED"
        assert db_session.query(Payment).filter(Payment.amount_cents < 0).count() == 0
        assert ticket_service.get_ticket(repaired_ticket.id).status == TicketStatus.REPAIRED

    def test_damaged_parts_are_written_off(self, db_session, ticket, part, staff, admin):
        other = inventory_service.create_part(
            sku="BAT-X1", name="Battery X1", actor=admin, quantity=4, unit_price_cents=1500,
        )
        screen_line = inventory_service.add_part_to_ticket(ticket.id, part.id, 2, staff, Policy())
        battery_line = inventory_service.add_part_to_ticket(ticket.id, other.id, 1, staff, Policy())
        advance(ticket.id, admin, TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED)
        policy = Policy(auto_restock_on_return=True)

        doc = return_service.create_return(ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(
            doc.id, admin, policy,
            part_conditions={str(screen_line.id): "good", str(battery_line.id): "DAMAGED"},
        )

        assert inventory_service.get_part(part.id).quantity == 5
        assert inventory_service.get_part(other.id).quantity == 3
        loss = db_session.query(InventoryTransaction).filter_by(reason=InventoryReason.DAMAGE_LOSS).one()
        assert loss.part_id == other.id
        assert loss.quantity == 1
        assert loss.return_id == doc.id
        assert inventory_service.reconcile_parts() == []

    def test_unknown_part_line_rejected(self, db_session, ticket, part, staff, admin):
        inventory_service.add_part_to_ticket(ticket.id, part.id, 2, staff, Policy())
        advance(ticket.id, admin, TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED)
        policy = Policy(auto_restock_on_return=True)
        doc = return_service.create_return(ticket.id, "Defect", 0, staff, policy)

        with pytest.raises(ValidationError):
            return_service.approve_return(doc.id, admin, policy, part_conditions={"999": "DAMAGED"})
        with pytest.raises(ValidationError):
            return_service.approve_return(doc.id, admin, policy, part_conditions=["DAMAGED"])

        assert inventory_service.get_part(part.id).quantity == 3
        assert return_service.get_return(doc.id).status == ReturnStatus.PENDING

    def test_approval_refund_is_not_capped_by_payments(self, db_session, repaired_ticket, staff, admin, policy):
        # Only the price caps an approval refund; record_cash_refund is the path capped by net paid.
        doc = return_service.create_return(repaired_ticket.id, "Defect", 10000, staff, policy)
        return_service.approve_return(doc.id, admin, policy)

        refund = db_session.query(Payment).one()
        assert refund.amount_cents == -10000
        balance = balance_service.get_ticket_balance(repaired_ticket.id)
        assert balance.total_paid_cents == -10000
        assert balance.outstanding_cents == 20000

    def test_approved_return_blocks_new_return(self, db_session, repaired_ticket, staff, admin, policy):
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(doc.id, admin, policy)
        # RETURNED is terminal, so status is rejected before the active check.
        with pytest.raises(DomainRuleViolation):
            return_service.create_return(repaired_ticket.id, "Again", 0, staff, policy)


class TestCashRefund:

    def test_refund_against_approved_return(self, db_session, repaired_ticket, staff, admin, policy):
        payment_service.record_payment(repaired_ticket.id, 6000, "CASH", staff)
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        return_service.approve_return(doc.id, admin, policy)

        refund = payment_service.record_cash_refund(doc.id, 2500, admin, receipt_number="R-1")
        assert refund.amount_cents == -2500
        assert refund.reference == "R-1"

        with pytest.raises(ValidationError):
            payment_service.record_cash_refund(doc.id, 4000, admin)

    def test_refund_requires_approved_return(self, db_session, repaired_ticket, staff, admin, policy):
        payment_service.record_payment(repaired_ticket.id, 6000, "CASH", staff)
        doc = return_service.create_return(repaired_ticket.id, "Defect", 0, staff, policy)
        with pytest.raises(DomainRuleViolation):
            payment_service.record_cash_refund(doc.id, 1000, admin)


"""
Ticket lifecycle tests.

Verifies:
- Transition table and role filter decisions (pure rules)
- Evaluation order of rejection codes
- change_status writes status + history together, stamps completed_at,
  and writes nothing for rejected or no-op requests
"""

import pytest

from conftest import advance
from repairdesk.errors import AuthorizationError, DomainRuleViolation, ValidationError
from repairdesk.models import Role, TicketStatus, TicketStatusHistory
from repairdesk.services import payment_service, ticket_service
from repairdesk.services.lifecycle_service import (
    TransitionCode,
    allowed_transitions,
    allowed_transitions_for_role,
    can_transition,
    is_terminal,
    parse_status,
)


# =============================================================================
# PURE RULES
# =============================================================================


class TestCanTransition:

    def test_same_status_is_allowed(self):
        result = can_transition(TicketStatus.CANCELLED, TicketStatus.CANCELLED, Role.TECHNICIAN)
        assert result.allowed

    @pytest.mark.parametrize("terminal", [TicketStatus.CANCELLED, TicketStatus.RETURNED])
    @pytest.mark.parametrize("role", list(Role))
    def test_terminal_rejects_every_role(self, terminal, role):
        for target in TicketStatus:
            if target == terminal:
                continue
            result = can_transition(terminal, target, role)
            assert not result.allowed
            assert result.code == TransitionCode.TERMINAL_STATE

    def test_returned_requires_return_flow(self):
        result = can_transition(TicketStatus.COMPLETED, TicketStatus.RETURNED, Role.ADMIN)
        assert result.code == TransitionCode.RETURN_FLOW_REQUIRED

    def test_not_in_table_lists_legal_targets(self):
        result = can_transition(TicketStatus.RECEIVED, TicketStatus.COMPLETED, Role.ADMIN)
        assert result.code == TransitionCode.INVALID_TRANSITION
        assert "IN_PROGRESS" in result.reason
        assert "CANCELLED" in result.reason

    def test_completed_has_no_manual_targets(self):
        assert allowed_transitions(TicketStatus.COMPLETED) == []
        result = can_transition(TicketStatus.COMPLETED, TicketStatus.CANCELLED, Role.ADMIN)
        assert result.code == TransitionCode.INVALID_TRANSITION

    def test_staff_cannot_cancel(self):
        result = can_transition(TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED, Role.STAFF)
        assert result.code == TransitionCode.INSUFFICIENT_PERMISSIONS

    def test_technician_cannot_complete(self):
        result = can_transition(TicketStatus.REPAIRED, TicketStatus.COMPLETED, Role.TECHNICIAN)
        assert result.code == TransitionCode.INSUFFICIENT_PERMISSIONS

    def test_permission_checked_before_payment(self):
        result = can_transition(
            TicketStatus.REPAIRED, TicketStatus.COMPLETED, Role.TECHNICIAN, outstanding_cents=500
        )
        assert result.code == TransitionCode.INSUFFICIENT_PERMISSIONS

    def test_completion_requires_zero_balance(self):
        result = can_transition(
            TicketStatus.REPAIRED, TicketStatus.COMPLETED, Role.STAFF, outstanding_cents=4000
        )
        assert result.code == TransitionCode.PAYMENT_REQUIRED
        assert "payment outstanding" in result.reason

    def test_override_only_honoured_for_admin(self):
        staff = can_transition(
            TicketStatus.REPAIRED, TicketStatus.COMPLETED, Role.STAFF, outstanding_cents=1, override=True
        )
        admin = can_transition(
            TicketStatus.REPAIRED, TicketStatus.COMPLETED, Role.ADMIN, outstanding_cents=1, override=True
        )
        assert staff.code == TransitionCode.PAYMENT_REQUIRED
        assert admin.allowed

    def test_role_filtered_targets(self):
        assert allowed_transitions_for_role(TicketStatus.REPAIRED, Role.TECHNICIAN) == []
        assert allowed_transitions_for_role(TicketStatus.REPAIRED, Role.STAFF) == [TicketStatus.COMPLETED]
        assert set(allowed_transitions_for_role(TicketStatus.REPAIRED, Role.ADMIN)) == {
            TicketStatus.COMPLETED,
            TicketStatus.CANCELLED,
        }

    def test_is_terminal(self):
        assert is_terminal(TicketStatus.RETURNED)
        assert is_terminal(TicketStatus.CANCELLED)
        assert not is_terminal(TicketStatus.COMPLETED)

    def test_parse_status_rejects_unknown(self):
        assert parse_status("in_progress") == TicketStatus.IN_PROGRESS
        with pytest.raises(ValidationError):
            parse_status("BROKEN")


# =============================================================================
# APPLYING TRANSITIONS
# =============================================================================


class TestChangeStatus:

    def _history(self, db_session, ticket_id):
        return (
            db_session.query(TicketStatusHistory)
            .filter_by(ticket_id=ticket_id)
            .order_by(TicketStatusHistory.id)
            .all()
        )

    def test_create_ticket_starts_received(self, db_session, ticket, events):
        assert ticket.status == TicketStatus.RECEIVED
        assert ticket.ticket_number == f"T-{ticket.id:06d}"
        assert len(ticket.tracking_code) == 8
        history = self._history(db_session, ticket.id)
        assert [h.note for h in history] == ["Ticket created"]
        assert "ticket.created" in events.types()

    def test_transition_writes_history_and_event(self, db_session, ticket, technician, events):
        updated = ticket_service.change_status(ticket.id, "IN_PROGRESS", technician)

        assert updated.status == TicketStatus.IN_PROGRESS
        history = self._history(db_session, ticket.id)
        assert history[-1].status == TicketStatus.IN_PROGRESS
        assert history[-1].note == "Status changed from RECEIVED to IN_PROGRESS"
        assert history[-1].actor_id == technician.id
        assert "ticket.status_changed" in events.types()

    def test_same_status_writes_nothing(self, db_session, ticket, admin, events):
        events.clear()
        ticket_service.change_status(ticket.id, TicketStatus.RECEIVED, admin)
        assert len(self._history(db_session, ticket.id)) == 1
        assert events.types() == []

    def test_repaired_stamps_completed_at(self, db_session, ticket, admin):
        advance(ticket.id, admin, TicketStatus.IN_PROGRESS)
        assert ticket_service.get_ticket(ticket.id).completed_at is None
        advance(ticket.id, admin, TicketStatus.REPAIRED)
        stamped = ticket_service.get_ticket(ticket.id).completed_at
        assert stamped is not None

    def test_rejected_transition_writes_nothing(self, db_session, ticket, admin):
        with pytest.raises(DomainRuleViolation) as exc:
            ticket_service.change_status(ticket.id, TicketStatus.COMPLETED, admin)
        assert exc.value.code == TransitionCode.INVALID_TRANSITION
        assert ticket_service.get_ticket(ticket.id).status == TicketStatus.RECEIVED
        assert len(self._history(db_session, ticket.id)) == 1

    def test_role_rejection_is_authorization_error(self, db_session, ticket, staff):
        with pytest.raises(AuthorizationError) as exc:
            ticket_service.change_status(ticket.id, TicketStatus.CANCELLED, staff)
        assert exc.value.code == TransitionCode.INSUFFICIENT_PERMISSIONS

    def test_cancelled_is_final_for_admin(self, db_session, ticket, admin):
        ticket_service.change_status(ticket.id, TicketStatus.CANCELLED, admin)
        with pytest.raises(DomainRuleViolation) as exc:
            ticket_service.change_status(ticket.id, TicketStatus.IN_PROGRESS, admin)
        assert exc.value.code == TransitionCode.TERMINAL_STATE

    def test_manual_returned_rejected(self, db_session, repaired_ticket, admin):
        with pytest.raises(DomainRuleViolation) as exc:
            ticket_service.change_status(repaired_ticket.id, TicketStatus.RETURNED, admin)
        assert exc.value.code == TransitionCode.RETURN_FLOW_REQUIRED

    def test_scenario_a_completion_gated_by_balance(self, db_session, repaired_ticket, staff):
        payment_service.record_payment(repaired_ticket.id, 6000, "CASH", staff)

        with pytest.raises(DomainRuleViolation) as exc:
            ticket_service.change_status(repaired_ticket.id, TicketStatus.COMPLETED, staff)
        assert exc.value.code == TransitionCode.PAYMENT_REQUIRED
        assert "outstanding" in exc.value.message

        payment_service.record_payment(repaired_ticket.id, 4000, "CASH", staff)
        completed = ticket_service.change_status(repaired_ticket.id, TicketStatus.COMPLETED, staff)
        assert completed.status == TicketStatus.COMPLETED
        assert completed.paid is True

    def test_admin_override_completes_with_balance(self, db_session, repaired_ticket, admin):
        completed = ticket_service.change_status(
            repaired_ticket.id, TicketStatus.COMPLETED, admin, override=True
        )
        assert completed.status == TicketStatus.COMPLETED
        assert completed.paid is False
        history = self._history(db_session, repaired_ticket.id)
        assert "admin override" in history[-1].note


# =============================================================================
# PRICE AND DELETION
# =============================================================================


class TestTicketMaintenance:

    def test_final_price_only_when_repaired(self, db_session, ticket, staff):
        with pytest.raises(DomainRuleViolation):
            ticket_service.update_final_price(ticket.id, 8000, "Discount", staff)

    def test_final_price_recorded_in_history(self, db_session, repaired_ticket, staff):
        updated = ticket_service.update_final_price(repaired_ticket.id, 8000, "Loyalty discount", staff)
        assert updated.effective_price_cents == 8000
        last = ticket_service.get_history(repaired_ticket.id)[-1]
        assert "10000" in last.note and "8000" in last.note

    def test_final_price_requires_reason(self, db_session, repaired_ticket, staff):
        with pytest.raises(ValidationError):
            ticket_service.update_final_price(repaired_ticket.id, 8000, "  ", staff)

    def test_soft_delete_blocked_by_payments(self, db_session, ticket, admin):
        payment_service.record_payment(ticket.id, 1000, "CASH", admin)
        with pytest.raises(DomainRuleViolation):
            ticket_service.soft_delete_ticket(ticket.id, admin)

    def test_soft_delete_hides_ticket(self, db_session, ticket, admin):
        ticket_service.soft_delete_ticket(ticket.id, admin)
        assert ticket.id not in [t.id for t in ticket_service.list_tickets()]
        assert ticket.id in [t.id for t in ticket_service.list_tickets(include_deleted=True)]

    def test_active_filter(self, db_session, ticket, admin):
        assert [t.id for t in ticket_service.list_tickets(status="active")] == [ticket.id]
        ticket_service.change_status(ticket.id, TicketStatus.CANCELLED, admin)
        assert ticket_service.list_tickets(status="active") == []

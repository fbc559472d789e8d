# Overview: Ticket status state machine; pure rules, no database access.

"""
RepairDesk Ticket Lifecycle Rules

================================================================================
PURPOSE: Decide whether a ticket may move from one status to another
================================================================================

STATE MACHINE:
    RECEIVED -> IN_PROGRESS -> (WAITING_FOR_PARTS <-> IN_PROGRESS) -> REPAIRED -> COMPLETED

    CANCELLED: reachable from every non-terminal, non-completed state (ADMIN only)
    RETURNED:  reachable ONLY through the returns workflow (return_service.py)

RULES (evaluated in order, first failure wins):
1. Same status is a no-op and is always allowed
2. CANCELLED and RETURNED are terminal for every role
3. RETURNED is never a manual target
4. The (current, target) pair must be in TRANSITIONS
5. The actor's role must be listed on that pair
6. Entering COMPLETED requires a zero outstanding balance, unless an ADMIN
   explicitly overrides

Applying a transition (history row, completed_at, paid flag, events) lives in
ticket_service.change_status. This module never touches the session.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ValidationError
from ..models.enums import Role, TicketStatus, TERMINAL_TICKET_STATUSES


ALL_ROLES = frozenset({Role.ADMIN, Role.STAFF, Role.TECHNICIAN})
OFFICE_ROLES = frozenset({Role.ADMIN, Role.STAFF})
ADMIN_ONLY = frozenset({Role.ADMIN})


class TransitionCode:
    TERMINAL_STATE = "TERMINAL_STATE"
    RETURN_FLOW_REQUIRED = "RETURN_FLOW_REQUIRED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"


# (current, target) -> roles allowed to invoke it
TRANSITIONS: dict[tuple[TicketStatus, TicketStatus], frozenset[Role]] = {
    (TicketStatus.RECEIVED, TicketStatus.IN_PROGRESS): ALL_ROLES,
    (TicketStatus.RECEIVED, TicketStatus.CANCELLED): ADMIN_ONLY,
    (TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FOR_PARTS): ALL_ROLES,
    (TicketStatus.IN_PROGRESS, TicketStatus.REPAIRED): ALL_ROLES,
    (TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED): ADMIN_ONLY,
    (TicketStatus.WAITING_FOR_PARTS, TicketStatus.IN_PROGRESS): ALL_ROLES,
    (TicketStatus.WAITING_FOR_PARTS, TicketStatus.CANCELLED): ADMIN_ONLY,
    (TicketStatus.REPAIRED, TicketStatus.COMPLETED): OFFICE_ROLES,
    (TicketStatus.REPAIRED, TicketStatus.CANCELLED): ADMIN_ONLY,
}


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    reason: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls) -> "TransitionResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, code: str, reason: str) -> "TransitionResult":
        return cls(allowed=False, reason=reason, code=code)


def parse_status(value) -> TicketStatus:
    if isinstance(value, TicketStatus):
        return value
    try:
        return TicketStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in TicketStatus)
        raise ValidationError(f"Invalid status '{value}'. Must be one of: {allowed}")


def is_terminal(status: TicketStatus) -> bool:
    return status in TERMINAL_TICKET_STATUSES


def allowed_transitions(current: TicketStatus) -> list[TicketStatus]:
    """Legal targets from `current`, ignoring role and balance, in table order."""
    return [target for (source, target) in TRANSITIONS if source == current]


def allowed_transitions_for_role(current: TicketStatus, role: Role) -> list[TicketStatus]:
    return [
        target
        for (source, target), roles in TRANSITIONS.items()
        if source == current and role in roles
    ]


def can_transition(
    current: TicketStatus,
    target: TicketStatus,
    role: Role,
    *,
    outstanding_cents: int = 0,
    override: bool = False,
) -> TransitionResult:
    """
    Decide a single transition.

    WHY outstanding_cents instead of a ticket: keeps the rules pure so the
    caller decides how the balance is derived (balance_service).
    """
    if current == target:
        return TransitionResult.ok()

    if is_terminal(current):
        return TransitionResult.deny(
            TransitionCode.TERMINAL_STATE,
            f"Ticket is {current.value}; no further status changes are allowed",
        )

    if target == TicketStatus.RETURNED:
        return TransitionResult.deny(
            TransitionCode.RETURN_FLOW_REQUIRED,
            "RETURNED can only be set by approving a return",
        )

    roles = TRANSITIONS.get((current, target))
    if roles is None:
        legal = ", ".join(s.value for s in allowed_transitions(current)) or "none"
        return TransitionResult.deny(
            TransitionCode.INVALID_TRANSITION,
            f"Cannot change status from {current.value} to {target.value}. Allowed: {legal}",
        )

    if role not in roles:
        return TransitionResult.deny(
            TransitionCode.INSUFFICIENT_PERMISSIONS,
            f"Role {role.value} may not change status from {current.value} to {target.value}",
        )

    if target == TicketStatus.COMPLETED and outstanding_cents > 0:
        if not (override and role == Role.ADMIN):
            return TransitionResult.deny(
                TransitionCode.PAYMENT_REQUIRED,
                f"Cannot complete ticket: payment outstanding: {outstanding_cents} cents",
            )

    return TransitionResult.ok()

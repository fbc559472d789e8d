# Overview: Per-call collaborators injected into the core: actor identity and policy snapshot.

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from flask import current_app

from .config import parse_bool
from .models.enums import Role


@dataclass(frozen=True)
class Actor:
    """Authenticated caller. Authentication itself happens upstream."""

    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def can_handle_returns(self) -> bool:
        return self.role in (Role.ADMIN, Role.STAFF)


@dataclass(frozen=True)
class Policy:
    """
    Shop settings read once per operation.

    Passed explicitly to every operation that consults settings so a single
    call never sees two different values for the same key.
    """

    return_window_days: int = 30
    require_return_approval: bool = True
    allow_partial_refunds: bool = True
    auto_restock_on_return: bool = False
    allow_negative_stock: bool = False

    @classmethod
    def from_config(cls, config: Mapping) -> "Policy":
        return cls(
            return_window_days=int(config.get("RETURN_WINDOW_DAYS", 30)),
            require_return_approval=parse_bool(config.get("REQUIRE_RETURN_APPROVAL"), True),
            allow_partial_refunds=parse_bool(config.get("ALLOW_PARTIAL_REFUNDS"), True),
            auto_restock_on_return=parse_bool(config.get("AUTO_RESTOCK_ON_RETURN"), False),
            allow_negative_stock=parse_bool(config.get("ALLOW_NEGATIVE_STOCK"), False),
        )


def current_policy() -> Policy:
    """Snapshot the policy from the active application's config."""
    return Policy.from_config(current_app.config)

"""Invoice approval routing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

ADMIN_OVERRIDE_SENTINEL = "ADMIN_OVERRIDE"

REASON_MISSED_CUTOFF = "Missed cutoff"
REASON_ADMIN_OVERRIDE = "Admin override"
REASON_CUSTOMER_APPROVAL = "Customer requires approval"


class RoutingAction(str, Enum):
    """Routing outcomes."""

    PROCEED_ISSUE = "PROCEED_ISSUE"
    ROUTE_ADMIN = "ROUTE_ADMIN"
    ROUTE_CUSTOMER_APPROVAL = "ROUTE_CUSTOMER_APPROVAL"


@dataclass(frozen=True)
class RoutingOutcome:
    """Decision on whether an invoice may be issued now."""

    action: RoutingAction
    requires_customer_approval: bool
    missed_cutoff: bool
    cutoff_at_utc: datetime
    evaluated_at_utc: datetime
    reasons: list[str] = field(default_factory=list)

    @property
    def may_issue(self) -> bool:
        return self.action == RoutingAction.PROCEED_ISSUE

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "requiresCustomerApproval": self.requires_customer_approval,
            "missedCutoff": self.missed_cutoff,
            "cutoffAtUtc": self.cutoff_at_utc.isoformat(),
            "evaluatedAtUtc": self.evaluated_at_utc.isoformat(),
            "reasons": list(self.reasons),
        }


def has_admin_override(approval_status: str | None, approval_note: str | None) -> bool:
    """An override is an APPROVED status with a note carrying the sentinel."""
    return approval_status == "APPROVED" and (approval_note or "").startswith(
        ADMIN_OVERRIDE_SENTINEL
    )


def evaluate_routing(
    *,
    approval_status: str | None,
    approval_note: str | None,
    requires_customer_approval: bool,
    cutoff_at: datetime,
    now: datetime,
) -> RoutingOutcome:
    """Route an invoice. First matching rule wins:

    1. Missed cutoff without admin override -> ROUTE_ADMIN
    2. Missed cutoff with admin override -> PROCEED_ISSUE
    3. Customer requires approval -> ROUTE_CUSTOMER_APPROVAL
    4. Otherwise -> PROCEED_ISSUE
    """
    missed_cutoff = now > cutoff_at

    def outcome(action: RoutingAction, *reasons: str) -> RoutingOutcome:
        return RoutingOutcome(
            action=action,
            requires_customer_approval=requires_customer_approval,
            missed_cutoff=missed_cutoff,
            cutoff_at_utc=cutoff_at,
            evaluated_at_utc=now,
            reasons=list(reasons),
        )

    if missed_cutoff:
        if has_admin_override(approval_status, approval_note):
            return outcome(RoutingAction.PROCEED_ISSUE, REASON_ADMIN_OVERRIDE)
        return outcome(RoutingAction.ROUTE_ADMIN, REASON_MISSED_CUTOFF)

    if requires_customer_approval:
        return outcome(RoutingAction.ROUTE_CUSTOMER_APPROVAL, REASON_CUSTOMER_APPROVAL)

    return outcome(RoutingAction.PROCEED_ISSUE)

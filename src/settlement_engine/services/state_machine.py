"""Invoice state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from settlement_engine.errors import InvalidTransitionError


class InvoiceStatus(str, Enum):
    """Invoice status values."""

    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    VOIDED = "VOIDED"


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class ApprovalStatus(str, Enum):
    """Invoice approval status values."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InvoiceStateMachine:
    """State machine for invoice status transitions.

    Allowed transitions:
    - DRAFT -> ISSUED
    - DRAFT -> VOIDED
    - ISSUED -> VOIDED
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        InvoiceStatus.DRAFT: [InvoiceStatus.ISSUED, InvoiceStatus.VOIDED],
        InvoiceStatus.ISSUED: [InvoiceStatus.VOIDED],
        InvoiceStatus.VOIDED: [],  # Terminal state
    }

    # Statuses where line items may still change
    EDITABLE = {InvoiceStatus.DRAFT}

    # Statuses that accept payments
    PAYABLE = {InvoiceStatus.ISSUED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def can_edit_lines(cls, status: str) -> bool:
        return status in cls.EDITABLE

    @classmethod
    def accepts_payments(cls, status: str) -> bool:
        return status in cls.PAYABLE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

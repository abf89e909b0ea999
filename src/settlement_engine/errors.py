"""Exception hierarchy for settlement operations.

Every rejection is local to one operation and leaves no partial state.
The API layer maps each family onto an HTTP status.
"""

from __future__ import annotations

from uuid import UUID


class SettlementError(Exception):
    """Base class for all settlement errors."""


# ===== Validation =====


class ValidationError(SettlementError):
    """Input rejected before any write."""


class PaymentValidationError(ValidationError):
    """Payment amount, date ordering or backdate justification is invalid."""


class PacketValidationError(ValidationError):
    """Payroll packet week anchor is malformed or not a Monday."""


class RoutingInputError(ValidationError):
    """Routing cannot be evaluated because an input record is missing."""


# ===== Not found =====


class NotFoundError(SettlementError):
    """Referenced record does not exist."""

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class InvoiceNotFoundError(NotFoundError):
    def __init__(self, invoice_id: UUID | str):
        super().__init__("Invoice", invoice_id)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: UUID | str):
        super().__init__("Invoice payment", payment_id)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: UUID | str):
        super().__init__("Order", order_id)


class LineItemNotFoundError(NotFoundError):
    def __init__(self, line_item_id: UUID | str):
        super().__init__("Invoice line item", line_item_id)


# ===== State conflicts =====


class StateConflictError(SettlementError):
    """Operation is not allowed in the record's current state."""


class InvalidTransitionError(StateConflictError):
    """Raised when an invalid invoice state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AlreadyIssuedError(StateConflictError):
    def __init__(self, invoice_id: UUID, invoice_number: str):
        self.invoice_id = invoice_id
        self.invoice_number = invoice_number
        super().__init__(f"Invoice has already been issued as {invoice_number}")


class HoursNotReadyError(StateConflictError):
    """Approved hours are missing, or pending/rejected hours remain."""


class PaymentStateError(StateConflictError):
    """Payment recorded against an invoice that is not ISSUED."""


class InvoiceRoutingBlockedError(StateConflictError):
    """Issuance was routed for manual review instead of proceeding."""

    def __init__(self, action: str, reasons: list[str]):
        self.action = action
        self.reasons = list(reasons)
        super().__init__(
            f"Invoice cannot be issued: {action}. Reasons: {'; '.join(self.reasons)}"
        )


class PacketExistsError(StateConflictError):
    def __init__(self, week_start: str):
        self.week_start = week_start
        super().__init__(f"Payroll packet already exists for week {week_start}")


class SnapshotImmutableError(StateConflictError):
    def __init__(self, invoice_id: UUID):
        self.invoice_id = invoice_id
        super().__init__(
            "Burden snapshot already exists for this invoice and is immutable."
        )


# ===== Data completeness =====


class DataCompletenessError(SettlementError):
    """Upstream data must be fixed before the operation can be retried."""


class MissingJobSiteStateError(DataCompletenessError):
    def __init__(self, invoice_id: UUID):
        self.invoice_id = invoice_id
        super().__init__(
            f"Missing job-site state for WC calculation (invoice {invoice_id})"
        )


class MissingBurdenRateError(DataCompletenessError):
    def __init__(self, state_code: str, category: str = "WC"):
        self.state_code = state_code
        self.category = category
        label = "Work Comp" if category == "WC" else category
        super().__init__(f"Missing {label} rate for state={state_code}")

"""ORM models for the settlement engine."""

from settlement_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from settlement_engine.models.commission import (
    CommissionAssignment,
    CommissionEvent,
    CommissionPlan,
    CommissionTier,
)
from settlement_engine.models.directory import (
    AppUser,
    Customer,
    EmployeeProfile,
    Location,
    Order,
    OrderStatus,
    Trade,
)
from settlement_engine.models.finance import (
    BurdenCategory,
    BurdenLevel,
    PayrollBurdenRate,
    TradeMarginSnapshot,
)
from settlement_engine.models.hours import (
    HoursApprovalStatus,
    HoursEntry,
    HoursEntryLine,
    HoursEntryType,
    LineUnit,
)
from settlement_engine.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceLineType,
    InvoicePayment,
    InvoiceSequence,
)
from settlement_engine.models.payroll import (
    PayrollDeductionElection,
    PayrollPacket,
    PayrollPacketLine,
)
from settlement_engine.models.system import AuditEvent, SystemSetting

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    "AppUser",
    "Customer",
    "EmployeeProfile",
    "Location",
    "Order",
    "OrderStatus",
    "Trade",
    "HoursApprovalStatus",
    "HoursEntry",
    "HoursEntryLine",
    "HoursEntryType",
    "LineUnit",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceLineType",
    "InvoicePayment",
    "InvoiceSequence",
    "BurdenCategory",
    "BurdenLevel",
    "PayrollBurdenRate",
    "TradeMarginSnapshot",
    "CommissionAssignment",
    "CommissionEvent",
    "CommissionPlan",
    "CommissionTier",
    "PayrollDeductionElection",
    "PayrollPacket",
    "PayrollPacketLine",
    "AuditEvent",
    "SystemSetting",
]

"""Settlement engine services."""

from settlement_engine.services.approval_router import RoutingAction, RoutingOutcome, evaluate_routing
from settlement_engine.services.commission_service import CommissionSettlementService, SettlementResult
from settlement_engine.services.invoice_service import InvoiceService
from settlement_engine.services.margin_snapshot_service import SnapshotResult, TradeMarginSnapshotService
from settlement_engine.services.payment_ledger import DuplicateWarning, PaymentLedger, RecordedPayment
from settlement_engine.services.payroll_packet_service import PacketResult, PayrollPacketService
from settlement_engine.services.settings_service import SettingsService
from settlement_engine.services.state_machine import ApprovalStatus, InvoiceStateMachine, InvoiceStatus

__all__ = [
    "RoutingAction",
    "RoutingOutcome",
    "evaluate_routing",
    "CommissionSettlementService",
    "SettlementResult",
    "InvoiceService",
    "SnapshotResult",
    "TradeMarginSnapshotService",
    "DuplicateWarning",
    "PaymentLedger",
    "RecordedPayment",
    "PacketResult",
    "PayrollPacketService",
    "SettingsService",
    "ApprovalStatus",
    "InvoiceStateMachine",
    "InvoiceStatus",
]

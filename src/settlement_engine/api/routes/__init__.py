"""API routes."""

from settlement_engine.api.routes.commissions import router as commissions_router
from settlement_engine.api.routes.health import router as health_router
from settlement_engine.api.routes.invoices import router as invoices_router
from settlement_engine.api.routes.payments import router as payments_router
from settlement_engine.api.routes.payroll import router as payroll_router

__all__ = [
    "commissions_router",
    "health_router",
    "invoices_router",
    "payments_router",
    "payroll_router",
]

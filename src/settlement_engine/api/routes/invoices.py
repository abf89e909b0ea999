"""Invoice API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from settlement_engine.api.dependencies import ActingUserId, DbSession, RequiredUserId
from settlement_engine.api.schemas import (
    DraftInvoiceCreate,
    ErrorResponse,
    InvoiceResponse,
    IssueRequest,
    PaidStateResponse,
    RoutingOverrideRequest,
    RoutingResponse,
)
from settlement_engine.errors import InvoiceNotFoundError
from settlement_engine.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post(
    "/orders/{order_id}/draft",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_draft_invoice(
    db: DbSession,
    order_id: Annotated[UUID, Path()],
    payload: DraftInvoiceCreate | None = None,
) -> InvoiceResponse:
    """Compose a DRAFT invoice from an order's approved hours. Idempotent."""
    payload = payload or DraftInvoiceCreate()
    invoice = await InvoiceService(db).create_draft_for_order(order_id, payload.bill_rate)
    return InvoiceResponse.model_validate(invoice)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_invoice(
    db: DbSession,
    invoice_id: Annotated[UUID, Path()],
) -> InvoiceResponse:
    """Get an invoice with its line items."""
    invoice = await InvoiceService(db).get_invoice(invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError(invoice_id)
    return InvoiceResponse.model_validate(invoice)


@router.get(
    "/{invoice_id}/routing",
    response_model=RoutingResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_invoice_routing(
    db: DbSession,
    invoice_id: Annotated[UUID, Path()],
    holiday_week: Annotated[bool, Query()] = False,
) -> RoutingResponse:
    """Evaluate cutoff and approval routing without changing the invoice."""
    outcome = await InvoiceService(db).get_routing_outcome(
        invoice_id, holiday_week=holiday_week
    )
    return RoutingResponse(
        action=outcome.action.value,
        requires_customer_approval=outcome.requires_customer_approval,
        missed_cutoff=outcome.missed_cutoff,
        cutoff_at_utc=outcome.cutoff_at_utc,
        evaluated_at_utc=outcome.evaluated_at_utc,
        reasons=outcome.reasons,
    )


@router.post(
    "/{invoice_id}/issue",
    response_model=InvoiceResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def issue_invoice(
    db: DbSession,
    user_id: ActingUserId,
    invoice_id: Annotated[UUID, Path()],
    payload: IssueRequest | None = None,
) -> InvoiceResponse:
    """Issue a DRAFT invoice, or route it for review."""
    payload = payload or IssueRequest()
    invoice = await InvoiceService(db).issue(
        invoice_id, user_id, holiday_week=payload.holiday_week
    )
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/{invoice_id}/routing-override",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def override_invoice_routing(
    db: DbSession,
    user_id: RequiredUserId,
    invoice_id: Annotated[UUID, Path()],
    payload: RoutingOverrideRequest | None = None,
) -> InvoiceResponse:
    """Record an admin override on a routed DRAFT invoice."""
    note = payload.note if payload else None
    invoice = await InvoiceService(db).override_routing(invoice_id, user_id, note)
    return InvoiceResponse.model_validate(invoice)


@router.get(
    "/{invoice_id}/paid-state",
    response_model=PaidStateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_paid_state(
    db: DbSession,
    invoice_id: Annotated[UUID, Path()],
) -> PaidStateResponse:
    """Paid-to-date and remaining balance."""
    paid = await InvoiceService(db).compute_paid_state(invoice_id)
    return PaidStateResponse.model_validate(paid)

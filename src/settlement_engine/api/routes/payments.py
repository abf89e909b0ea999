"""Invoice payment API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from settlement_engine.api.dependencies import ActingUserId, DbSession
from settlement_engine.api.schemas import (
    DuplicateWarningResponse,
    ErrorResponse,
    PaymentCreate,
    PaymentRecordedResponse,
    PaymentResponse,
    SettlementResponse,
)
from settlement_engine.services.payment_ledger import PaymentLedger

router = APIRouter(prefix="/invoices", tags=["payments"])


@router.post(
    "/{invoice_id}/payments",
    response_model=PaymentRecordedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def record_payment(
    db: DbSession,
    user_id: ActingUserId,
    invoice_id: Annotated[UUID, Path()],
    payload: PaymentCreate,
) -> PaymentRecordedResponse:
    """Record a payment and settle its commissions.

    A suspected duplicate is reported in ``duplicate_warning`` but never
    blocks the payment.
    """
    recorded = await PaymentLedger(db).record_payment(
        invoice_id,
        payload.amount_cents,
        payload.payment_received_at,
        payload.payment_posted_at,
        posted_by_user_id=user_id,
        bank_deposit_at=payload.bank_deposit_at,
        backdate_reason=payload.backdate_reason,
        source=payload.source,
    )
    warning = recorded.duplicate_warning
    return PaymentRecordedResponse(
        payment=PaymentResponse.model_validate(recorded.payment),
        snapshot_created=recorded.snapshot.created,
        settlement=SettlementResponse.model_validate(recorded.settlement),
        duplicate_warning=(
            DuplicateWarningResponse.model_validate(warning) if warning else None
        ),
    )


@router.get(
    "/{invoice_id}/payments",
    response_model=list[PaymentResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_payments(
    db: DbSession,
    invoice_id: Annotated[UUID, Path()],
) -> list[PaymentResponse]:
    """Payments for an invoice, most recently posted first."""
    payments = await PaymentLedger(db).get_payments_ledger(invoice_id)
    return [PaymentResponse.model_validate(p) for p in payments]

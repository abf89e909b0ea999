"""Commission API endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response

from settlement_engine.api.dependencies import DbSession
from settlement_engine.api.schemas import ErrorResponse, SettlementResponse
from settlement_engine.exports import commission_packet_csv
from settlement_engine.services.commission_service import CommissionSettlementService

router = APIRouter(prefix="/commissions", tags=["commissions"])


@router.post(
    "/payments/{payment_id}/settle",
    response_model=SettlementResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def settle_payment(
    db: DbSession,
    payment_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    """Settle commissions for a payment. Re-running creates nothing new."""
    result = await CommissionSettlementService(db).settle_for_payment(payment_id)
    return SettlementResponse.model_validate(result)


@router.get("/packet.csv", response_class=Response)
async def export_commission_packet(
    db: DbSession,
    start: Annotated[datetime, Query()],
    end: Annotated[datetime, Query()],
) -> Response:
    """Commission events posted within [start, end] as CSV."""
    rows = await CommissionSettlementService(db).get_commission_packet_rows(start, end)
    return Response(
        content=commission_packet_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="commission-packet.csv"'},
    )

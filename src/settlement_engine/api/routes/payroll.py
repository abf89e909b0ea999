"""Payroll packet API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Response, status

from settlement_engine.api.dependencies import ActingUserId, DbSession
from settlement_engine.api.schemas import ErrorResponse, PayrollPacketResponse
from settlement_engine.services.payroll_packet_service import PayrollPacketService

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.get(
    "/packets/{week_start}.csv",
    response_class=Response,
    responses={400: {"model": ErrorResponse}},
)
async def export_payroll_packet(
    db: DbSession,
    week_start: Annotated[str, Path()],
) -> Response:
    """Payroll packet for a Monday-anchored week as CSV."""
    content = await PayrollPacketService(db).export_packet_csv(week_start)
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="payroll-packet-{week_start}.csv"'
        },
    )


@router.post(
    "/packets/{week_start}",
    response_model=PayrollPacketResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def generate_payroll_packet(
    db: DbSession,
    user_id: ActingUserId,
    week_start: Annotated[str, Path()],
) -> PayrollPacketResponse:
    """Generate and store the week's payroll packet. One per week."""
    result = await PayrollPacketService(db).generate_and_persist_packet(week_start, user_id)
    return PayrollPacketResponse(
        packet_id=result.packet_id,
        week_start=result.week_start,
        week_end=result.week_end,
        line_count=len(result.rows),
    )

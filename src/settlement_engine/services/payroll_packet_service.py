"""Weekly payroll packet aggregation.

One packet per Monday-anchored week. Rows are one per (employee, LOC):
an employee who worked several job-site codes in the week gets several rows.
Only OFFICIAL hours with APPROVED status are included.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from settlement_engine.calculators.money import format_fixed, to_decimal
from settlement_engine.database import atomic
from settlement_engine.errors import PacketExistsError, PacketValidationError
from settlement_engine.exports import payroll_packet_csv
from settlement_engine.models import (
    AppUser,
    HoursApprovalStatus,
    HoursEntry,
    HoursEntryType,
    LineUnit,
    PayrollDeductionElection,
    PayrollPacket,
    PayrollPacketLine,
)
from settlement_engine.services.audit import record_audit

logger = logging.getLogger(__name__)

WEEK_START_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
DEDUCTION_CODES = ("ETV", "ADV")

# earning code -> (bucket, required unit)
EARNING_CODE_BUCKETS = {
    "REG": ("reg_hours", LineUnit.HOURS),
    "OT": ("ot_hours", LineUnit.HOURS),
    "DT": ("dt_hours", LineUnit.HOURS),
    "H": ("holiday_hours", LineUnit.HOURS),
    "BONUS": ("bonus_amount", LineUnit.DOLLARS),
    "REM": ("reimb_amount", LineUnit.DOLLARS),
    "PD": ("per_diem_amount", LineUnit.DOLLARS),
}

SD_UNIT_BUCKETS = {
    LineUnit.REG_SD: "reg_sd_hours",
    LineUnit.OT_SD: "ot_sd_hours",
    LineUnit.DT_SD: "dt_sd_hours",
}

_ZERO = Decimal("0")


def parse_week_start(week_start: str) -> date:
    """Parse a YYYY-MM-DD Monday."""
    if not WEEK_START_PATTERN.match(week_start or ""):
        raise PacketValidationError("weekStart must be in YYYY-MM-DD format")
    try:
        parsed = date.fromisoformat(week_start)
    except ValueError:
        raise PacketValidationError("weekStart is invalid date")
    if parsed.weekday() != 0:
        raise PacketValidationError("weekStart must be a Monday")
    return parsed


def format_employee_name(full_name: str | None) -> str:
    """'First Middle Last' -> 'Last, First Middle'. Names with a comma pass through."""
    if not full_name:
        return ""
    trimmed = full_name.strip()
    if "," in trimmed:
        return trimmed
    parts = trimmed.split()
    if len(parts) >= 2:
        return f"{parts[-1]}, {' '.join(parts[:-1])}"
    return trimmed


@dataclass
class PacketRow:
    """One (employee, LOC) line of the payroll packet. Amounts in dollars."""

    ssn: str
    employee_name: str
    loc: str
    reg_rate: Decimal = _ZERO
    reg_hours: Decimal = _ZERO
    ot_hours: Decimal = _ZERO
    dt_hours: Decimal = _ZERO
    holiday_hours: Decimal = _ZERO
    bonus_amount: Decimal = _ZERO
    reimb_amount: Decimal = _ZERO
    mileage_amount: Decimal = _ZERO
    per_diem_amount: Decimal = _ZERO
    advance_deduction_amount: Decimal = _ZERO
    etv_deduction_amount: Decimal = _ZERO
    reg_sd_hours: Decimal = _ZERO
    ot_sd_hours: Decimal = _ZERO
    dt_sd_hours: Decimal = _ZERO

    def amounts(self) -> dict[str, Decimal]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("ssn", "employee_name", "loc")
        }

    def as_list(self) -> list[str]:
        return [self.ssn, self.employee_name, self.loc] + [
            format_fixed(value, 2) for value in self.amounts().values()
        ]


@dataclass
class _Aggregate:
    worker_id: UUID
    loc: str
    buckets: dict[str, Decimal]
    reg_rate: Decimal = _ZERO

    def add(self, bucket: str, quantity: Decimal) -> None:
        self.buckets[bucket] = self.buckets.get(bucket, _ZERO) + quantity


@dataclass(frozen=True)
class PacketResult:
    week_start: date
    week_end: date
    rows: list[PacketRow]
    packet_id: UUID | None = None


class PayrollPacketService:
    """Builds and persists weekly payroll packets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate_packet_rows(self, week_start: str) -> PacketResult:
        """Aggregate approved official hours overlapping the week.

        Overlap: period_end > week start and period_start < week start + 7 days,
        with the week anchored at UTC midnight.
        """
        start_date = parse_week_start(week_start)
        start = datetime.combine(start_date, time(0), tzinfo=timezone.utc)
        end = start + timedelta(days=7)

        result = await self.session.execute(
            select(HoursEntry)
            .where(
                HoursEntry.type == HoursEntryType.OFFICIAL,
                HoursEntry.approval_status == HoursApprovalStatus.APPROVED,
                HoursEntry.period_end > start,
                HoursEntry.period_start < end,
            )
            .options(selectinload(HoursEntry.lines), selectinload(HoursEntry.order))
            .order_by(HoursEntry.period_start, HoursEntry.created_at)
        )
        entries = list(result.scalars().all())

        aggregates: dict[tuple[UUID, str], _Aggregate] = {}
        for entry in entries:
            loc = (entry.order.job_location_code if entry.order else None) or ""
            key = (entry.worker_id, loc)
            agg = aggregates.get(key)
            if agg is None:
                agg = aggregates[key] = _Aggregate(worker_id=entry.worker_id, loc=loc, buckets={})
            self._accumulate(agg, entry)

        worker_ids = sorted({agg.worker_id for agg in aggregates.values()}, key=str)
        users = await self._load_users(worker_ids)
        deductions = await self._load_deductions(worker_ids, start_date)

        rows = []
        for agg in aggregates.values():
            user = users.get(agg.worker_id)
            employee_deductions = deductions.get(agg.worker_id, {})
            rows.append(
                PacketRow(
                    ssn=(user.profile.ssn if user and user.profile else None) or "",
                    employee_name=format_employee_name(user.full_name if user else None),
                    loc=agg.loc,
                    reg_rate=agg.reg_rate,
                    advance_deduction_amount=employee_deductions.get("ADV", _ZERO),
                    etv_deduction_amount=employee_deductions.get("ETV", _ZERO),
                    **agg.buckets,
                )
            )
        rows.sort(key=lambda row: (row.employee_name, row.loc))

        return PacketResult(week_start=start_date, week_end=end.date(), rows=rows)

    @staticmethod
    def _accumulate(agg: _Aggregate, entry: HoursEntry) -> None:
        if not entry.lines:
            if entry.total_hours:
                agg.add("reg_hours", to_decimal(entry.total_hours))
            return

        for line in entry.lines:
            quantity = to_decimal(line.quantity)
            mapping = EARNING_CODE_BUCKETS.get(line.earning_code)
            if mapping is not None and line.unit == mapping[1]:
                agg.add(mapping[0], quantity)
                if line.earning_code == "REG":
                    rate = to_decimal(line.rate)
                    if rate > 0 and agg.reg_rate == 0:
                        agg.reg_rate = rate

            sd_bucket = SD_UNIT_BUCKETS.get(line.unit)
            if sd_bucket is not None:
                agg.add(sd_bucket, quantity)

    async def _load_users(self, worker_ids: list[UUID]) -> dict[UUID, AppUser]:
        if not worker_ids:
            return {}
        result = await self.session.execute(
            select(AppUser)
            .where(AppUser.user_id.in_(worker_ids))
            .options(selectinload(AppUser.profile))
        )
        return {user.user_id: user for user in result.scalars().all()}

    async def _load_deductions(
        self,
        worker_ids: list[UUID],
        week_start: date,
    ) -> dict[UUID, dict[str, Decimal]]:
        """Latest non-zero active election per (employee, code), in dollars."""
        if not worker_ids:
            return {}
        result = await self.session.execute(
            select(PayrollDeductionElection)
            .where(
                PayrollDeductionElection.employee_id.in_(worker_ids),
                PayrollDeductionElection.is_active.is_(True),
                PayrollDeductionElection.effective_week <= week_start,
                PayrollDeductionElection.code.in_(DEDUCTION_CODES),
            )
            .order_by(
                PayrollDeductionElection.effective_week.desc(),
                PayrollDeductionElection.created_at.desc(),
            )
        )

        deductions: dict[UUID, dict[str, Decimal]] = {}
        for election in result.scalars().all():
            by_code = deductions.setdefault(election.employee_id, {})
            if election.code not in by_code and election.amount_cents:
                by_code[election.code] = Decimal(election.amount_cents) / 100
        return deductions

    async def export_packet_csv(self, week_start: str) -> str:
        packet = await self.generate_packet_rows(week_start)
        return payroll_packet_csv(packet.rows)

    async def generate_and_persist_packet(
        self,
        week_start: str,
        user_id: UUID | None = None,
    ) -> PacketResult:
        """Generate the week's rows and store them as the week's only packet.

        Raises:
            PacketValidationError: Malformed or non-Monday week start
            PacketExistsError: A packet was already generated for this week
        """
        packet_result = await self.generate_packet_rows(week_start)
        start_date = packet_result.week_start

        async with atomic(self.session):
            existing = await self.session.execute(
                select(PayrollPacket.payroll_packet_id).where(
                    PayrollPacket.week_start == start_date
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise PacketExistsError(week_start)

            packet = PayrollPacket(week_start=start_date, generated_by_user_id=user_id)
            packet.lines = [
                PayrollPacketLine(
                    line_number=index,
                    ssn=row.ssn,
                    employee_name=row.employee_name,
                    loc=row.loc,
                    **row.amounts(),
                )
                for index, row in enumerate(packet_result.rows, start=1)
            ]
            self.session.add(packet)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                raise PacketExistsError(week_start) from exc

            await record_audit(
                self.session,
                entity_type="payroll_packet",
                entity_id=packet.payroll_packet_id,
                action="packet_generated",
                actor_user_id=user_id,
                after={"weekStart": week_start, "lineCount": len(packet.lines)},
            )

        logger.info(
            "Generated payroll packet %s for week %s with %d line(s)",
            packet.payroll_packet_id,
            week_start,
            len(packet_result.rows),
        )
        return PacketResult(
            week_start=start_date,
            week_end=packet_result.week_end,
            rows=packet_result.rows,
            packet_id=packet.payroll_packet_id,
        )

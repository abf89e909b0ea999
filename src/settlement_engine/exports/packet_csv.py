"""CSV rendering for packet exports.

Both exports use minimal quoting (fields containing a comma, quote or line
break are quoted) and carry no trailing line terminator.
"""

from __future__ import annotations

import csv
import io
from typing import Iterable, Protocol, Sequence

COMMISSION_PACKET_HEADERS = [
    "invoiceNumber",
    "invoiceId",
    "customerName",
    "paymentId",
    "paymentPostedAt",
    "paymentAmount",
    "commissionRateApplied",
    "commissionAmount",
    "salespersonUserId",
    "salespersonEmail",
    "commissionRule",
]

PAYROLL_PACKET_HEADERS = [
    "SSN",
    "EmployeeName",
    "LOC",
    "RegRate",
    "RegHours",
    "OTHours",
    "DTHours",
    "HolidayHours",
    "BonusAmount",
    "ReimbAmount",
    "MileageAmount",
    "PerDiemAmount",
    "AdvanceDeductionAmount",
    "ETVDeductionAmount",
    "RegSDHours",
    "OTSDHours",
    "DTSDHours",
]


class CsvRow(Protocol):
    def as_list(self) -> list[str]: ...


def _render(headers: Sequence[str], rows: Iterable[CsvRow], lineterminator: str) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator=lineterminator, quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row.as_list())
    return output.getvalue()[: -len(lineterminator)]


def commission_packet_csv(rows: Iterable[CsvRow]) -> str:
    """Commission packet, CRLF-separated."""
    return _render(COMMISSION_PACKET_HEADERS, rows, "\r\n")


def payroll_packet_csv(rows: Iterable[CsvRow]) -> str:
    """Payroll packet, LF-separated, every amount fixed to 2 decimals."""
    return _render(PAYROLL_PACKET_HEADERS, rows, "\n")

"""CSV exports for commission and payroll packets."""

from settlement_engine.exports.packet_csv import (
    COMMISSION_PACKET_HEADERS,
    PAYROLL_PACKET_HEADERS,
    commission_packet_csv,
    payroll_packet_csv,
)

__all__ = [
    "COMMISSION_PACKET_HEADERS",
    "PAYROLL_PACKET_HEADERS",
    "commission_packet_csv",
    "payroll_packet_csv",
]

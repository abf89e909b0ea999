"""Business settings stored in the system_setting table."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.commission import (
    DEFAULT_BANK_LAG_DAYS,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_POSTING_GRACE_DAYS,
)
from settlement_engine.models import SystemSetting

logger = logging.getLogger(__name__)

COMMISSION_DEFAULT_RATE = "finance.commission.defaultRate"
BANK_LAG_DAYS = "finance.commission.bankLagDays"
POSTING_GRACE_DAYS = "finance.commission.postingGraceDays"
INVOICE_FOOTER_TEXT = "invoice.footerText"

DEFAULTS: dict[str, Any] = {
    COMMISSION_DEFAULT_RATE: str(DEFAULT_COMMISSION_RATE),
    BANK_LAG_DAYS: DEFAULT_BANK_LAG_DAYS,
    POSTING_GRACE_DAYS: DEFAULT_POSTING_GRACE_DAYS,
    INVOICE_FOOTER_TEXT: "",
}


class SettingsService:
    """Reads and writes business settings, falling back to defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_value(self, key: str) -> Any:
        """Raw stored value, or the default when unset."""
        setting = await self.session.get(SystemSetting, key)
        if setting is None or setting.value_json is None:
            return DEFAULTS.get(key)
        return setting.value_json

    async def set_value(self, key: str, value: Any, user_id: UUID | None = None) -> SystemSetting:
        """Insert or update a setting. The caller owns the transaction."""
        setting = await self.session.get(SystemSetting, key)
        if setting is None:
            setting = SystemSetting(key=key, value_json=value, updated_by_user_id=user_id)
            self.session.add(setting)
        else:
            setting.value_json = value
            setting.updated_by_user_id = user_id
        await self.session.flush()
        logger.info("Setting %s updated", key)
        return setting

    async def get_commission_default_rate(self) -> Decimal:
        value = await self.get_value(COMMISSION_DEFAULT_RATE)
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, TypeError):
            logger.warning("Invalid %s value %r; using default", COMMISSION_DEFAULT_RATE, value)
            return DEFAULT_COMMISSION_RATE
        return rate if rate.is_finite() else DEFAULT_COMMISSION_RATE

    async def get_bank_lag_days(self) -> int:
        return await self._get_int(BANK_LAG_DAYS, DEFAULT_BANK_LAG_DAYS)

    async def get_posting_grace_days(self) -> int:
        return await self._get_int(POSTING_GRACE_DAYS, DEFAULT_POSTING_GRACE_DAYS)

    async def get_invoice_footer_text(self) -> str:
        value = await self.get_value(INVOICE_FOOTER_TEXT)
        return value if isinstance(value, str) else ""

    async def _get_int(self, key: str, default: int) -> int:
        value = await self.get_value(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s value %r; using default", key, value)
            return default

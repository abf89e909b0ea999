"""Burden rate resolution with scope precedence."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.models import BurdenCategory, BurdenLevel, PayrollBurdenRate

LEVEL_PRECEDENCE: tuple[str, ...] = (
    BurdenLevel.WORKER,
    BurdenLevel.SITE,
    BurdenLevel.STATE,
    BurdenLevel.GLOBAL,
)


class BurdenRateResolver:
    """Resolves burden percentages for a job site as of a date.

    Rate selection per category:
    1. Most specific scope wins: WORKER, then SITE, then STATE, then GLOBAL
    2. Within a scope, the latest effective_date on or before effective_at
    3. A category with no rate at any scope resolves to 0
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_rates(
        self,
        effective_at: datetime,
        state_code: str | None = None,
        location_id: UUID | None = None,
        worker_id: UUID | None = None,
    ) -> dict[str, Decimal]:
        """Resolve every burden category to a percentage."""
        candidates = await self._get_candidate_rates(
            effective_at, state_code, location_id, worker_id
        )

        chosen: dict[str, tuple[int, PayrollBurdenRate]] = {}
        for rate in candidates:
            rank = LEVEL_PRECEDENCE.index(rate.level)
            current = chosen.get(rate.category)
            if current is None or rank < current[0]:
                chosen[rate.category] = (rank, rate)
            # Candidates arrive newest first, so an equal rank is never better

        return {
            category: (chosen[category][1].rate_percent if category in chosen else Decimal("0"))
            for category in BurdenCategory.ALL
        }

    async def _get_candidate_rates(
        self,
        effective_at: datetime,
        state_code: str | None,
        location_id: UUID | None,
        worker_id: UUID | None,
    ) -> list[PayrollBurdenRate]:
        scopes = [PayrollBurdenRate.level == BurdenLevel.GLOBAL]
        if state_code:
            scopes.append(
                and_(
                    PayrollBurdenRate.level == BurdenLevel.STATE,
                    PayrollBurdenRate.state_code == state_code,
                )
            )
        if location_id is not None:
            scopes.append(
                and_(
                    PayrollBurdenRate.level == BurdenLevel.SITE,
                    PayrollBurdenRate.location_id == location_id,
                )
            )
        if worker_id is not None:
            scopes.append(
                and_(
                    PayrollBurdenRate.level == BurdenLevel.WORKER,
                    PayrollBurdenRate.worker_id == worker_id,
                )
            )

        result = await self.session.execute(
            select(PayrollBurdenRate)
            .where(
                PayrollBurdenRate.effective_date <= effective_at,
                or_(*scopes),
            )
            .order_by(
                PayrollBurdenRate.effective_date.desc(),
                PayrollBurdenRate.created_at.desc(),
            )
        )
        return list(result.scalars().all())

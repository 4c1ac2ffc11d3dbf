"""
Pricing Rule Resolver.

Responsible for determining the per-page rate for a new print job.
Follows priority:
1. Active pricing rule whose validity window contains now
2. Configured default rates
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from autoprint.app.core.config import settings
from autoprint.app.models.pricing_rule import PricingRule
from autoprint.app.models.print_job_enums import ColorMode

CENT = Decimal("0.01")


@dataclass(frozen=True)
class JobCost:
    total_pages: int
    cost_per_page: Decimal
    total_cost: Decimal


class PricingResolver:

    @staticmethod
    async def resolve_active_rule(db: AsyncSession) -> Optional[PricingRule]:
        """
        Find the currently active pricing rule, if any.
        """
        now = datetime.now(timezone.utc)

        query = select(PricingRule).where(
            PricingRule.is_active == True,
            PricingRule.effective_from <= now,
            (PricingRule.effective_until.is_(None) | (PricingRule.effective_until >= now))
        ).order_by(PricingRule.effective_from.desc(), PricingRule.id.desc()).limit(1)

        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_cost_per_page(db: AsyncSession, color_mode: ColorMode) -> Decimal:
        rule = await PricingResolver.resolve_active_rule(db)

        if color_mode == ColorMode.COLOR:
            rate = rule.cost_per_page_color if rule else settings.default_cost_per_page_color
        else:
            rate = rule.cost_per_page_bw if rule else settings.default_cost_per_page_bw

        return Decimal(rate).quantize(CENT)

    @staticmethod
    def compute_cost(page_count: int, copies: int, cost_per_page: Decimal) -> JobCost:
        """
        Cost of a job: page count x copies x per-page rate.

        Raises:
            ValueError: If page count or copies is not positive.
        """
        if page_count <= 0:
            raise ValueError("page_count must be positive")
        if copies <= 0:
            raise ValueError("copies must be positive")

        total_pages = page_count * copies
        total_cost = (Decimal(total_pages) * cost_per_page).quantize(CENT)
        return JobCost(total_pages=total_pages, cost_per_page=cost_per_page, total_cost=total_cost)

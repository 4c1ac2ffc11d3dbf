"""
Pricing Rule database model.

Defines the per-page rates used to fix a print job's cost at creation.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric
from sqlalchemy.sql import func
from autoprint.app.db.session import Base


class PricingRule(Base):
    """
    Pricing Rule model.

    Only one rule applies at a time: the active rule with the latest
    effective_from inside its validity window.
    """
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Rule details
    rule_name = Column(String(100), nullable=False)
    cost_per_page_bw = Column(Numeric(10, 2), nullable=False)
    cost_per_page_color = Column(Numeric(10, 2), nullable=False)

    # Validity
    effective_from = Column(DateTime(timezone=True), nullable=False)
    effective_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Audit
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PricingRule(id={self.id}, name='{self.rule_name}', bw={self.cost_per_page_bw}, color={self.cost_per_page_color})>"

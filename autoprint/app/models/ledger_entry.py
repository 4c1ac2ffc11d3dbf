"""
Ledger Entry database model.

Append-only record of every balance movement.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, String, Numeric, UniqueConstraint
from sqlalchemy.sql import func
from autoprint.app.db.session import Base
from autoprint.app.models.billing_enums import LedgerEntryType


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Immutable record of financial movement on an account.
    Credits reference the payment that funded them, debits the print job
    that consumed them. Operator adjustments reference neither and carry a
    signed amount. The unique constraints allow at most one credit per
    payment and one debit per job.
    NO updates or deletions allowed.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # Linkage
    payment_id = Column(Integer, ForeignKey('payments.id'), nullable=True, index=True)
    print_job_id = Column(Integer, ForeignKey('print_jobs.id'), nullable=True, index=True)

    # Entry details
    entry_type = Column(Enum(LedgerEntryType), nullable=False)  # DEBIT, CREDIT or ADJUSTMENT
    amount = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('payment_id', 'entry_type', name='uq_ledger_entries_payment_entry'),
        UniqueConstraint('print_job_id', 'entry_type', name='uq_ledger_entries_job_entry'),
    )

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', amount={self.amount})>"

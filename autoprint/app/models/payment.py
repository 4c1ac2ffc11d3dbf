"""
Payment database model.

A payment moves pending → verified/completed/failed exactly once. Its amount
reaches the account balance through a single ledger credit.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Numeric, CheckConstraint
from sqlalchemy.sql import func
from autoprint.app.db.session import Base
from autoprint.app.models.billing_enums import PaymentStatus, PaymentMethod


class Payment(Base):
    """
    Payment model.

    Verification metadata (verified_by / verified_at / verification_notes)
    is stamped in the same transaction that flips the status and credits
    the ledger.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # Job the student paid for, if the payment was submitted against one
    print_job_id = Column(Integer, nullable=True, index=True)

    # Financials
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BDT")
    method = Column(Enum(PaymentMethod), nullable=False)
    transaction_id = Column(String(100), unique=True, nullable=True)

    # Status
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)

    # Verification
    verified_by = Column(String(255), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verification_notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, status='{self.status.value}')>"

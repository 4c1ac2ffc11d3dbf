"""
Account database model.

Students and operators share one accounts table; only students hold a
spendable balance in practice.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Numeric, CheckConstraint
from sqlalchemy.sql import func
from autoprint.app.db.session import Base
from autoprint.app.models.enums import AccountRole


class Account(Base):
    """
    Account model.

    `balance` is mutated only through the Balance Ledger, which keeps it
    non-negative with a guarded UPDATE (the check constraint is the storage
    backstop).
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    student_id = Column(String(50), unique=True, nullable=True)

    role = Column(Enum(AccountRole), default=AccountRole.STUDENT, nullable=False)
    balance = Column(Numeric(12, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, username='{self.username}', role='{self.role.value}', balance={self.balance})>"

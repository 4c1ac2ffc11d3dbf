"""
Balance Ledger (Domain Logic).

Holds each account's spendable balance. Credits and debits are single
guarded UPDATE statements paired with an append-only LedgerEntry, flushed
into the caller's unit of work so they commit or roll back together with
the payment or job transition that triggered them.

Balance arithmetic in SQL is rounded to the column scale on both sides of
the guard; SQLite evaluates NUMERIC columns as floating point, where
0.70 + 0.10 is not 0.80.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc, func

from autoprint.app.core.exceptions import ResourceNotFoundError, InsufficientFundsError, ValidationFailedError
from autoprint.app.models.account import Account
from autoprint.app.models.ledger_entry import LedgerEntry
from autoprint.app.models.billing_enums import LedgerEntryType

logger = logging.getLogger("autoprint.ledger")

BALANCE_TYPE = Account.__table__.c.balance.type
CENT = Decimal(1).scaleb(-BALANCE_TYPE.scale)


def to_money(amount) -> Decimal:
    """Quantize an amount to the balance column's scale."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def _rounded(expr):
    return func.round(expr, BALANCE_TYPE.scale, type_=BALANCE_TYPE)


class BalanceLedger:

    @staticmethod
    async def balance_of(db: AsyncSession, account_id: int) -> Decimal:
        """
        Read-only balance snapshot.

        May be stale under concurrent writes; callers gating a mutation on
        the balance must rely on the guarded debit instead.

        Raises:
            ResourceNotFoundError: If the account does not exist.
        """
        result = await db.execute(select(Account.balance).where(Account.id == account_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise ResourceNotFoundError("Account", account_id)
        return Decimal(balance)

    @staticmethod
    async def credit(
        db: AsyncSession,
        account_id: int,
        amount: Decimal,
        payment_id: int,
        description: Optional[str] = None
    ) -> LedgerEntry:
        """
        Increase an account balance on behalf of a settled payment.

        Must run inside the unit of work that marks the payment settled.
        The (payment_id, CREDIT) unique constraint rejects a second credit
        for the same payment.

        Raises:
            ValidationFailedError: If amount is not positive.
            ResourceNotFoundError: If the account does not exist.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationFailedError("Credit amount must be positive", details={"amount": str(amount)})

        result = await db.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=_rounded(Account.balance + amount))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ResourceNotFoundError("Account", account_id)

        balance_after = await BalanceLedger.balance_of(db, account_id)
        entry = LedgerEntry(
            account_id=account_id,
            payment_id=payment_id,
            entry_type=LedgerEntryType.CREDIT,
            amount=amount,
            balance_after=balance_after,
            description=description or f"Payment {payment_id}"
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Credited account %s with %s for payment %s (balance %s)",
            account_id, amount, payment_id, balance_after
        )
        return entry

    @staticmethod
    async def debit(
        db: AsyncSession,
        account_id: int,
        amount: Decimal,
        print_job_id: int,
        description: Optional[str] = None
    ) -> LedgerEntry:
        """
        Decrease an account balance to fund a print job.

        The UPDATE only matches while balance >= amount, so concurrent debits
        can never take the balance negative.

        Raises:
            ValidationFailedError: If amount is not positive.
            ResourceNotFoundError: If the account does not exist.
            InsufficientFundsError: If the balance does not cover the amount.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationFailedError("Debit amount must be positive", details={"amount": str(amount)})

        result = await db.execute(
            update(Account)
            .where(Account.id == account_id, _rounded(Account.balance) >= amount)
            .values(balance=_rounded(Account.balance - amount))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Distinguish a missing account from a short balance
            available = await BalanceLedger.balance_of(db, account_id)
            logger.warning(
                "Debit of %s for job %s refused: account %s holds %s",
                amount, print_job_id, account_id, available
            )
            raise InsufficientFundsError(account_id, requested=amount, available=available)

        balance_after = await BalanceLedger.balance_of(db, account_id)
        entry = LedgerEntry(
            account_id=account_id,
            print_job_id=print_job_id,
            entry_type=LedgerEntryType.DEBIT,
            amount=amount,
            balance_after=balance_after,
            description=description or f"Print job {print_job_id}"
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Debited account %s by %s for print job %s (balance %s)",
            account_id, amount, print_job_id, balance_after
        )
        return entry

    @staticmethod
    async def adjust(
        db: AsyncSession,
        account_id: int,
        amount: Decimal,
        reason: str,
        actor: Optional[str] = None
    ) -> LedgerEntry:
        """
        Operator correction of a balance by a signed amount.

        A negative adjustment is guarded like a debit and cannot take the
        balance below zero.

        Raises:
            ValidationFailedError: If amount is zero.
            ResourceNotFoundError: If the account does not exist.
            InsufficientFundsError: If a negative adjustment exceeds the balance.
        """
        amount = to_money(amount)
        if amount == 0:
            raise ValidationFailedError("Adjustment amount must be non-zero", details={"amount": str(amount)})

        conditions = [Account.id == account_id]
        if amount < 0:
            conditions.append(_rounded(Account.balance) >= -amount)

        result = await db.execute(
            update(Account)
            .where(*conditions)
            .values(balance=_rounded(Account.balance + amount))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await BalanceLedger.balance_of(db, account_id)
            raise InsufficientFundsError(account_id, requested=-amount, available=available)

        balance_after = await BalanceLedger.balance_of(db, account_id)
        entry = LedgerEntry(
            account_id=account_id,
            entry_type=LedgerEntryType.ADJUSTMENT,
            amount=amount,
            balance_after=balance_after,
            description=f"Adjustment by {actor or 'operator'}: {reason}"[:255]
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Adjusted account %s by %s (%s); balance %s",
            account_id, amount, reason, balance_after
        )
        return entry

    @staticmethod
    async def history(db: AsyncSession, account_id: int, limit: int = 50) -> list[LedgerEntry]:
        """Ledger entries for an account, newest first."""
        result = await db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .limit(limit)
        )
        return result.scalars().all()

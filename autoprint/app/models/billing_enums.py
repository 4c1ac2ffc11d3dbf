"""
Payment and ledger enumerations.
"""

import enum


class PaymentStatus(str, enum.Enum):
    """
    Payment status enumeration.

    Status flow:
        PENDING → VERIFIED (operator) | COMPLETED (gateway callback) | FAILED
        VERIFIED, COMPLETED and FAILED are final.
    """
    PENDING = "pending"  # Submitted, waiting for verification
    COMPLETED = "completed"  # Confirmed by the payment gateway
    VERIFIED = "verified"  # Confirmed by an operator
    FAILED = "failed"  # Rejected


class PaymentMethod(str, enum.Enum):
    """Payment method enumeration."""
    MOBILE_WALLET = "mobile_wallet"
    CARD = "card"
    BALANCE = "balance"
    TRANSFER = "transfer"


class LedgerEntryType(str, enum.Enum):
    """Ledger entry type enumeration."""
    DEBIT = "debit"  # Money leaving the account
    CREDIT = "credit"  # Money entering the account
    ADJUSTMENT = "adjustment"  # Operator correction, signed

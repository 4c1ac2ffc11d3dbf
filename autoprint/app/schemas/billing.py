"""
Billing Schemas: payments, balance, ledger and pricing rules.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from autoprint.app.models.billing_enums import PaymentStatus, PaymentMethod, LedgerEntryType


class PaymentCreate(BaseModel):
    """Schema for submitting a payment."""
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    transaction_id: Optional[str] = Field(None, max_length=100, description="External transaction reference")
    print_job_id: Optional[int] = Field(None, gt=0, description="Job this payment is meant to fund")


class PaymentResponse(BaseModel):
    """Schema for payment response."""
    id: int
    account_id: int
    print_job_id: Optional[int]
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str]
    verified_by: Optional[str]
    verified_at: Optional[datetime]
    verification_notes: Optional[str]
    failure_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    """Schema for paginated payment list."""
    payments: List[PaymentResponse]
    total: int
    page: int
    page_size: int


class PaymentVerifyRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class GatewayCallbackRequest(BaseModel):
    """Payload posted by the payment gateway once a payment clears."""
    transaction_id: Optional[str] = Field(None, max_length=100)


class PaymentSettlementResponse(BaseModel):
    """Payment after verification or gateway completion, with the jobs it admitted."""
    payment: PaymentResponse
    admitted_job_ids: List[int]


class BalanceResponse(BaseModel):
    account_id: int
    balance: Decimal
    currency: str


class LedgerEntryResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    entry_type: LedgerEntryType
    amount: Decimal
    balance_after: Decimal
    payment_id: Optional[int]
    print_job_id: Optional[int]
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class PricingRuleCreate(BaseModel):
    """Schema for creating a pricing rule."""
    rule_name: str = Field(..., min_length=1, max_length=100)
    cost_per_page_bw: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    cost_per_page_color: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    effective_from: datetime
    effective_until: Optional[datetime] = None


class PricingRuleResponse(BaseModel):
    """Schema for displaying a pricing rule."""
    id: int
    rule_name: str
    cost_per_page_bw: Decimal
    cost_per_page_color: Decimal
    effective_from: datetime
    effective_until: Optional[datetime]
    is_active: bool
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True

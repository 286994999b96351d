# -*- coding: utf-8 -*-
"""
LendPulse - Ledger row models
Validated, immutable snapshots of the rows the analytics engine reads

Rows arrive either from the SQL projection or from plain dicts (tests,
imports). Both paths go through these models so every view sees the same
normalisation: null money is zero, identifiers are strings, statuses are
lower case.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _to_decimal(v) -> Decimal:
    if v is None or v == '':
        return Decimal('0')
    if isinstance(v, Decimal):
        return v
    if isinstance(v, float):
        return Decimal(str(v))
    try:
        return Decimal(v)
    except (InvalidOperation, TypeError):
        raise ValueError(f"not a monetary amount: {v!r}")


def _to_id(v) -> Optional[str]:
    if v is None or v == '':
        return None
    return str(v)


class _Row(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')


class LoanRow(_Row):
    """Disbursed loan with the branch, region, product and customer attributes joined in"""
    id: str
    scored_amount: Decimal = Decimal('0')
    total_payable: Decimal = Decimal('0')
    weekly_payment: Decimal = Decimal('0')
    status: str = 'disbursed'
    repayment_state: Optional[str] = None
    created_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None

    branch_id: Optional[str] = None
    branch_code: Optional[str] = None
    branch_name: Optional[str] = None
    region_id: Optional[str] = None
    region_name: Optional[str] = None
    product_name: Optional[str] = None
    product_type: Optional[str] = None

    customer_id: Optional[str] = None
    customer_date_of_birth: Optional[date] = None
    customer_county: Optional[str] = None
    customer_marital_status: Optional[str] = None
    customer_gender: Optional[str] = None
    customer_business_type: Optional[str] = None
    customer_daily_sales: Optional[Decimal] = None

    @field_validator('scored_amount', 'total_payable', 'weekly_payment', mode='before')
    @classmethod
    def money_or_zero(cls, v):
        return _to_decimal(v)

    @field_validator('customer_daily_sales', mode='before')
    @classmethod
    def optional_sales(cls, v):
        if v is None or v == '':
            return None
        return _to_decimal(v)

    @field_validator('id', 'branch_id', 'region_id', 'customer_id', mode='before')
    @classmethod
    def normalise_id(cls, v):
        return _to_id(v)

    @field_validator('status', mode='before')
    @classmethod
    def lower_status(cls, v):
        return (v or '').strip().lower()


class PaymentRow(_Row):
    """Repayment; loan_id is mandatory"""
    id: Optional[str] = None
    loan_id: str
    paid_amount: Decimal = Decimal('0')
    paid_at: Optional[datetime] = None
    payer_type: Optional[str] = None

    @field_validator('paid_amount', mode='before')
    @classmethod
    def money_or_zero(cls, v):
        return _to_decimal(v)

    @field_validator('id', 'loan_id', mode='before')
    @classmethod
    def normalise_id(cls, v):
        return _to_id(v)

    @field_validator('payer_type', mode='before')
    @classmethod
    def lower_payer_type(cls, v):
        if v is None or not str(v).strip():
            return None
        return str(v).strip().lower()


class InstallmentRow(_Row):
    """Scheduled installment"""
    id: Optional[str] = None
    loan_id: str
    installment_number: Optional[int] = None
    due_date: Optional[date] = None
    due_amount: Decimal = Decimal('0')
    principal_paid: Optional[Decimal] = None
    interest_paid: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    status: str = 'current'
    days_overdue: Optional[int] = None

    @field_validator('due_amount', mode='before')
    @classmethod
    def money_or_zero(cls, v):
        return _to_decimal(v)

    @field_validator('principal_paid', 'interest_paid', 'paid_amount', mode='before')
    @classmethod
    def optional_money(cls, v):
        if v is None or v == '':
            return None
        return _to_decimal(v)

    @field_validator('id', 'loan_id', mode='before')
    @classmethod
    def normalise_id(cls, v):
        return _to_id(v)

    @field_validator('status', mode='before')
    @classmethod
    def lower_status(cls, v):
        return (v or 'current').strip().lower()

    @field_validator('days_overdue')
    @classmethod
    def not_negative(cls, v):
        if v is not None and v < 0:
            return 0
        return v

    @field_validator('due_date', mode='before')
    @classmethod
    def date_only(cls, v):
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def amount_paid(self) -> Decimal:
        """principal + interest when either is recorded, else paid_amount, else 0"""
        if self.principal_paid is not None or self.interest_paid is not None:
            return (self.principal_paid or Decimal('0')) + (self.interest_paid or Decimal('0'))
        if self.paid_amount is not None:
            return self.paid_amount
        return Decimal('0')


class BranchRow(_Row):
    id: str
    name: str
    code: Optional[str] = None
    region_id: Optional[str] = None

    @field_validator('id', 'region_id', mode='before')
    @classmethod
    def normalise_id(cls, v):
        return _to_id(v)


class RegionRow(_Row):
    id: str
    name: str

    @field_validator('id', mode='before')
    @classmethod
    def normalise_id(cls, v):
        return _to_id(v)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Loans, payments and installments fetched for one request"""
    loans: List[LoanRow] = field(default_factory=list)
    payments: List[PaymentRow] = field(default_factory=list)
    installments: List[InstallmentRow] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.loans

# -*- coding: utf-8 -*-
"""
LendPulse - Dimension aggregator
Single-pass folding of loans (and payments) into per-key accumulators

Every loan lands in exactly one bucket; loans whose dimension value is
missing are folded under "Unknown". Accumulators live for one request only.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from config import ANALYTICS_CONFIG, DIMENSIONS

logger = logging.getLogger(__name__)

UNKNOWN = ANALYTICS_CONFIG['UNKNOWN_KEY']


@dataclass(frozen=True)
class DimensionKey:
    key: str
    name: str


UNKNOWN_KEY = DimensionKey(key=UNKNOWN, name=UNKNOWN)


@dataclass
class DimensionAccumulator:
    """Running totals for one dimension key"""
    key: str
    name: str
    disbursed: Decimal = Decimal('0')
    payable: Decimal = Decimal('0')
    collected: Decimal = Decimal('0')
    arrears: Decimal = Decimal('0')
    npl_amount: Decimal = Decimal('0')
    npl_count: int = 0
    loan_count: int = 0
    loan_ids: Set[str] = field(default_factory=set)
    npl_loan_ids: Set[str] = field(default_factory=set)
    daily_sales: Dict[str, Decimal] = field(default_factory=dict)  # customer id -> daily sales


@dataclass
class PaymentAccumulator:
    key: str
    name: str
    amount: Decimal = Decimal('0')
    count: int = 0


@dataclass
class LoyaltyAccumulator:
    key: str
    name: str
    customer_ids: Set[str] = field(default_factory=set)
    loan_count: int = 0
    amount: Decimal = Decimal('0')


# =============================================================================
# PAYMENT HELPERS
# =============================================================================

def group_payments(payments: Iterable) -> Dict[str, List]:
    by_loan = defaultdict(list)
    for payment in payments:
        by_loan[payment.loan_id].append(payment)
    return dict(by_loan)


def collected_by_loan(payments: Iterable) -> Dict[str, Decimal]:
    """Collected amount per loan id"""
    totals = defaultdict(lambda: Decimal('0'))
    for payment in payments:
        totals[payment.loan_id] += payment.paid_amount
    return dict(totals)


# =============================================================================
# KEY FUNCTIONS
# =============================================================================

def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def by_branch(loan) -> DimensionKey:
    name = _clean(loan.branch_name)
    code = _clean(loan.branch_code)
    if not name and not code:
        return UNKNOWN_KEY
    label = f"{name} ({code})" if name and code else (name or code)
    return DimensionKey(key=loan.branch_id or code or name, name=label)


def by_region(loan) -> DimensionKey:
    name = _clean(loan.region_name)
    if not name:
        return UNKNOWN_KEY
    return DimensionKey(key=loan.region_id or name, name=name)


def by_product(loan) -> DimensionKey:
    name = _clean(loan.product_name) or _clean(loan.product_type)
    if not name:
        return UNKNOWN_KEY
    return DimensionKey(key=name.lower(), name=name)


def by_county(loan) -> DimensionKey:
    county = _clean(loan.customer_county)
    if not county:
        return UNKNOWN_KEY
    return DimensionKey(key=county.lower(), name=county.title())


def by_marital_status(loan) -> DimensionKey:
    status = _clean(loan.customer_marital_status)
    if not status:
        return UNKNOWN_KEY
    return DimensionKey(key=status.lower(), name=status.capitalize())


def by_gender(loan) -> DimensionKey:
    gender = _clean(loan.customer_gender)
    if not gender:
        return UNKNOWN_KEY
    label = ANALYTICS_CONFIG['GENDERS'].get(gender.lower(), 'Other')
    return DimensionKey(key=label.lower(), name=label)


def by_business_type(loan) -> DimensionKey:
    business = _clean(loan.customer_business_type)
    if not business:
        return UNKNOWN_KEY
    return DimensionKey(key=' '.join(business.lower().split()), name=business.capitalize())


def age_bracket_key(today: date) -> Callable:
    """Key function bucketing borrowers by age (calendar-year difference) at `today`"""
    brackets = ANALYTICS_CONFIG['AGE_BRACKETS']

    def by_age_bracket(loan) -> DimensionKey:
        dob = loan.customer_date_of_birth
        if dob is None:
            return UNKNOWN_KEY
        age = today.year - dob.year
        for label, low, high in brackets:
            if age >= low and (high is None or age <= high):
                return DimensionKey(key=label, name=label)
        return UNKNOWN_KEY

    return by_age_bracket


def _tier_for(loan_count: int) -> Optional[str]:
    for label, low, high in ANALYTICS_CONFIG['LOYALTY_TIERS']:
        if loan_count >= low and (high is None or loan_count <= high):
            return label
    return None


def loyalty_tier_key(loans: Iterable) -> Callable:
    """Key function bucketing loans by how many loans their customer holds in `loans`"""
    counts = Counter(loan.customer_id for loan in loans if loan.customer_id)

    def by_loyalty_tier(loan) -> DimensionKey:
        if not loan.customer_id:
            return UNKNOWN_KEY
        tier = _tier_for(counts.get(loan.customer_id, 0))
        if tier is None:
            return UNKNOWN_KEY
        return DimensionKey(key=tier, name=tier)

    return by_loyalty_tier


def resolve_key_fn(dimension: str, loans: List, today: date) -> Callable:
    """Key function for a named dimension"""
    if dimension == 'branch':
        return by_branch
    if dimension == 'region':
        return by_region
    if dimension == 'product':
        return by_product
    if dimension == 'county':
        return by_county
    if dimension == 'marital_status':
        return by_marital_status
    if dimension == 'age_bracket':
        return age_bracket_key(today)
    if dimension == 'loyalty_tier':
        return loyalty_tier_key(loans)
    if dimension == 'gender':
        return by_gender
    if dimension == 'business_type':
        return by_business_type
    raise ValueError(f"Unknown dimension '{dimension}'. Available: {', '.join(DIMENSIONS)}")


# =============================================================================
# AGGREGATOR
# =============================================================================

class DimensionAggregator:
    """Folds loans into DimensionAccumulators in one pass"""

    def aggregate(self, loans: Iterable, payments_by_loan: Mapping[str, List],
                  classifications: Mapping, key_fn: Callable) -> Dict[str, DimensionAccumulator]:
        """
        Fold loans into accumulators keyed by `key_fn`.

        Args:
            loans: LoanRow iterable
            payments_by_loan: loan id -> payments of that loan
            classifications: loan id -> Classification
            key_fn: LoanRow -> DimensionKey

        Returns:
            key -> DimensionAccumulator, in order of first appearance
        """
        accumulators: Dict[str, DimensionAccumulator] = {}
        seen = set()

        for loan in loans:
            if loan.id in seen:
                logger.warning(f"Loan {loan.id} appears twice in the ledger snapshot, counted once")
                continue
            seen.add(loan.id)

            dim = key_fn(loan) or UNKNOWN_KEY
            acc = accumulators.get(dim.key)
            if acc is None:
                acc = DimensionAccumulator(key=dim.key, name=dim.name)
                accumulators[dim.key] = acc

            collected = sum((p.paid_amount for p in payments_by_loan.get(loan.id, ())), Decimal('0'))

            acc.disbursed += loan.scored_amount
            acc.payable += loan.total_payable
            acc.collected += collected
            acc.loan_count += 1
            acc.loan_ids.add(loan.id)
            if loan.customer_id:
                acc.daily_sales.setdefault(loan.customer_id, loan.customer_daily_sales or Decimal('0'))

            classification = classifications.get(loan.id)
            if classification is not None:
                if classification.is_npl:
                    acc.npl_amount += loan.total_payable - collected
                    acc.npl_count += 1
                    acc.npl_loan_ids.add(loan.id)
                acc.arrears += classification.arrears

        return accumulators

    def aggregate_payments(self, payments: Iterable) -> Dict[str, PaymentAccumulator]:
        """Fold payments by payer type; unrecognised types go to Other, missing ones to Unknown"""
        labels = ANALYTICS_CONFIG['PAYER_TYPES']
        accumulators: Dict[str, PaymentAccumulator] = {}

        for payment in payments:
            payer_type = payment.payer_type
            if payer_type is None:
                key, name = UNKNOWN, UNKNOWN
            elif payer_type in labels:
                key, name = payer_type, labels[payer_type]
            else:
                key, name = 'other', labels['other']

            acc = accumulators.get(key)
            if acc is None:
                acc = PaymentAccumulator(key=key, name=name)
                accumulators[key] = acc
            acc.amount += payment.paid_amount
            acc.count += 1

        return accumulators

    def aggregate_loyalty(self, loans: Iterable) -> Dict[str, LoyaltyAccumulator]:
        """Customers per loyalty tier; every configured tier is present"""
        loans = list(loans)
        key_fn = loyalty_tier_key(loans)
        tiers = {
            label: LoyaltyAccumulator(key=label, name=label)
            for label, _, _ in ANALYTICS_CONFIG['LOYALTY_TIERS']
        }

        for loan in loans:
            dim = key_fn(loan)
            acc = tiers.get(dim.key)
            if acc is None:
                acc = LoyaltyAccumulator(key=dim.key, name=dim.name)
                tiers[dim.key] = acc
            acc.customer_ids.add(loan.customer_id or f"loan:{loan.id}")
            acc.loan_count += 1
            acc.amount += loan.scored_amount

        return tiers


dimension_aggregator = DimensionAggregator()

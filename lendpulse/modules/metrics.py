# -*- coding: utf-8 -*-
"""
LendPulse - Metric deriver
Rates, averages and summaries from accumulated sums

Rounding rules:
- percentages: half-up, 1 decimal place
- average loan size and rendered money: half-up, whole units
- division by zero resolves to 0
Rounding is always the last step; accumulators keep full precision.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

from config import ANALYTICS_CONFIG, format_currency, format_currency_compact, format_percent

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')


def round_half_up(value, places: int = 0) -> Decimal:
    """Round a Decimal (or number) half-up to `places` decimals"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def safe_ratio(numerator, denominator) -> Decimal:
    """numerator / denominator, or 0 when the denominator is not positive"""
    if denominator is None or denominator <= 0:
        return ZERO
    return Decimal(numerator) / Decimal(denominator)


def percentage(numerator, denominator, places: int = 1) -> Decimal:
    return round_half_up(safe_ratio(numerator, denominator) * HUNDRED, places)


def money(value) -> int:
    """Whole currency units for display"""
    return int(round_half_up(value, ANALYTICS_CONFIG['MONEY_PLACES']))


@dataclass
class DimensionMetrics:
    """Derived metrics for one dimension key; money stays at full precision"""
    key: str
    name: str
    disbursed: Decimal
    payable: Decimal
    collected: Decimal
    outstanding: Decimal  # signed, negative when overpaid
    collection_rate: Decimal
    npl_amount: Decimal
    npl_rate: Decimal
    npl_count: int
    arrears_amount: Decimal
    loan_count: int
    avg_loan_size: Decimal
    customer_count: int = 0
    avg_daily_sales: Decimal = ZERO

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'disbursed': money(self.disbursed),
            'payable': money(self.payable),
            'collected': money(self.collected),
            'outstanding': money(max(self.outstanding, ZERO)),
            'collectionRate': float(self.collection_rate),
            'nplAmount': money(self.npl_amount),
            'nplRate': float(self.npl_rate),
            'nplCount': self.npl_count,
            'arrearsAmount': money(self.arrears_amount),
            'loanCount': self.loan_count,
            'avgLoanSize': int(self.avg_loan_size),
            'customerCount': self.customer_count,
            'avgDailySales': int(self.avg_daily_sales),
        }


class MetricDeriver:
    """Turns accumulators into DimensionMetrics and view summaries"""

    def __init__(self):
        self.rate_places = ANALYTICS_CONFIG['RATE_PLACES']

    def derive(self, acc) -> DimensionMetrics:
        return DimensionMetrics(
            key=acc.key,
            name=acc.name,
            disbursed=acc.disbursed,
            payable=acc.payable,
            collected=acc.collected,
            outstanding=acc.payable - acc.collected,
            collection_rate=percentage(acc.collected, acc.payable, self.rate_places),
            npl_amount=acc.npl_amount,
            npl_rate=percentage(acc.npl_amount, acc.payable, self.rate_places),
            npl_count=acc.npl_count,
            arrears_amount=acc.arrears,
            loan_count=acc.loan_count,
            avg_loan_size=round_half_up(safe_ratio(acc.disbursed, acc.loan_count), 0),
            customer_count=len(acc.daily_sales),
            avg_daily_sales=round_half_up(
                safe_ratio(sum(acc.daily_sales.values(), ZERO), len(acc.daily_sales)), 0),
        )

    def derive_all(self, accumulators: Dict[str, object]) -> List[DimensionMetrics]:
        return [self.derive(acc) for acc in accumulators.values()]

    # =========================================================================
    # SUMMARIES (always over the full, untruncated set)
    # =========================================================================

    def portfolio_summary(self, metrics: List[DimensionMetrics]) -> Dict:
        """Stat-card figures for a dimension view"""
        disbursed = sum((m.disbursed for m in metrics), ZERO)
        payable = sum((m.payable for m in metrics), ZERO)
        collected = sum((m.collected for m in metrics), ZERO)
        npl_amount = sum((m.npl_amount for m in metrics), ZERO)
        arrears = sum((m.arrears_amount for m in metrics), ZERO)
        rates = [m.collection_rate for m in metrics]
        outstanding = max(payable - collected, ZERO)
        collection_rate = percentage(collected, payable, self.rate_places)

        return {
            'totalDisbursed': money(disbursed),
            'totalPayable': money(payable),
            'totalCollected': money(collected),
            'totalOutstanding': money(outstanding),
            'totalLoans': sum(m.loan_count for m in metrics),
            'dimensionCount': len(metrics),
            'avgCollectionRate': float(round_half_up(
                safe_ratio(sum(rates, ZERO), len(rates)), self.rate_places)),
            'portfolioCollectionRate': float(collection_rate),
            'totalNplAmount': money(npl_amount),
            'nplRate': float(percentage(npl_amount, payable, self.rate_places)),
            'nplCount': sum(m.npl_count for m in metrics),
            'totalArrears': money(arrears),
            'display': {
                'totalDisbursed': format_currency_compact(disbursed),
                'totalCollected': format_currency_compact(collected),
                'totalOutstanding': format_currency(round_half_up(outstanding)),
                'portfolioCollectionRate': format_percent(collection_rate),
            },
        }

    def delinquency_summary(self, records: List) -> Dict:
        """Totals and averages for an NPL or overdue list"""
        count = len(records)
        turnover = sum((Decimal(r.turnover_percentage) for r in records), ZERO)
        days = sum((Decimal(r.days_overdue) for r in records), ZERO)

        return {
            'totalOverdue': money(sum((r.overdue_amount for r in records), ZERO)),
            'totalPaid': money(sum((r.paid_amount for r in records), ZERO)),
            'totalAmount': money(sum((r.total_amount for r in records), ZERO)),
            'avgTurnover': float(round_half_up(safe_ratio(turnover, count), self.rate_places)),
            'avgDaysOverdue': int(round_half_up(safe_ratio(days, count), 0)),
            'loanCount': count,
        }

    def trend_summary(self, buckets: List) -> Dict:
        total = sum((b.amount for b in buckets), ZERO)
        return {
            'totalAmount': money(total),
            'avgPerPeriod': money(safe_ratio(total, len(buckets))),
            'transactionCount': sum(b.count for b in buckets),
            'periodCount': len(buckets),
        }

    # =========================================================================
    # SHARE BREAKDOWNS
    # =========================================================================

    def payer_type_shares(self, accumulators: Dict[str, object]) -> List[Dict]:
        """Amount and payment-count shares per payer type, as whole percentages"""
        total_amount = sum((a.amount for a in accumulators.values()), ZERO)
        total_count = sum(a.count for a in accumulators.values())

        return [
            {
                'name': acc.name,
                'amount': money(acc.amount),
                'count': acc.count,
                'amountShare': int(percentage(acc.amount, total_amount, 0)),
                'countShare': int(percentage(acc.count, total_count, 0)),
            }
            for acc in accumulators.values()
        ]

    def loyalty_breakdown(self, tiers: Dict[str, object]) -> List[Dict]:
        """Customers, loans and disbursed amount per loyalty tier with shares"""
        total_customers = sum(len(t.customer_ids) for t in tiers.values())
        total_amount = sum((t.amount for t in tiers.values()), ZERO)

        return [
            {
                'name': tier.name,
                'customers': len(tier.customer_ids),
                'loanCount': tier.loan_count,
                'amount': money(tier.amount),
                'customerShare': float(percentage(len(tier.customer_ids), total_customers, self.rate_places)),
                'amountShare': float(percentage(tier.amount, total_amount, self.rate_places)),
            }
            for tier in tiers.values()
        ]

    def loyalty_summary(self, tiers: Dict[str, object]) -> Dict:
        customers = sum(len(t.customer_ids) for t in tiers.values())
        first_time = ANALYTICS_CONFIG['LOYALTY_TIERS'][0][0]
        first_time_customers = len(tiers[first_time].customer_ids) if first_time in tiers else 0
        repeat = customers - first_time_customers
        return {
            'totalCustomers': customers,
            'totalLoans': sum(t.loan_count for t in tiers.values()),
            'totalAmount': money(sum((t.amount for t in tiers.values()), ZERO)),
            'repeatCustomers': repeat,
            'repeatRate': float(percentage(repeat, customers, self.rate_places)),
        }

    def payer_summary(self, accumulators: Dict[str, object]) -> Dict:
        total_amount = sum((a.amount for a in accumulators.values()), ZERO)
        ranked = sorted(accumulators.values(), key=lambda a: a.amount, reverse=True)
        return {
            'totalAmount': money(total_amount),
            'paymentCount': sum(a.count for a in accumulators.values()),
            'payerTypeCount': len(accumulators),
            'topPayerType': ranked[0].name if ranked else None,
        }


metric_deriver = MetricDeriver()

# -*- coding: utf-8 -*-
"""
LendPulse - Period generator
Calendar buckets for trend views and the loan date windows behind every view

Selectors:
- week / month      -> daily labels (YYYY-MM-DD)
- quarter / 6months / year / all -> monthly labels (YYYY-MM)
- custom            -> no generated labels; observed payments are bucketed
                       daily for windows up to 31 days, monthly otherwise

"today" is always passed in by the caller. Timestamps are mapped to calendar
days in the business timezone; naive timestamps are read as UTC.
"""

import calendar
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from config import ANALYTICS_CONFIG, LOCALE_CONFIG
from lendpulse.modules.metrics import round_half_up

logger = logging.getLogger(__name__)


class Granularity(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


@dataclass
class PeriodBucket:
    """One day or month of a trend series"""
    period: str
    amount: Decimal = Decimal('0')
    count: int = 0

    def to_dict(self):
        return {
            'period': self.period,
            'amount': float(round_half_up(self.amount, ANALYTICS_CONFIG['MONEY_PLACES'])),
            'count': self.count,
        }


class PeriodGenerator:
    """
    Gap-free period labels and date windows for the range selectors.

    Every selector except `custom` yields a fixed, chronologically ordered
    label list; folding never drops or adds a generated bucket.
    """

    def __init__(self):
        self.config = ANALYTICS_CONFIG
        self.tz = ZoneInfo(LOCALE_CONFIG['timezone'])

    # =========================================================================
    # SELECTORS
    # =========================================================================

    def is_known(self, selector: str) -> bool:
        return (
            selector in self.config['DAILY_SELECTORS']
            or selector in self.config['MONTHLY_SELECTORS']
            or selector == self.config['CUSTOM_SELECTOR']
        )

    def granularity(self, selector: str, custom_window=None) -> Optional[Granularity]:
        """Daily for week/month and short custom windows, monthly otherwise; None if unknown"""
        if selector in self.config['DAILY_SELECTORS']:
            return Granularity.DAILY
        if selector in self.config['MONTHLY_SELECTORS']:
            return Granularity.MONTHLY
        if selector == self.config['CUSTOM_SELECTOR'] and custom_window is not None:
            span = (custom_window.end - custom_window.start).days
            if span <= self.config['CUSTOM_DAILY_MAX_DAYS']:
                return Granularity.DAILY
            return Granularity.MONTHLY
        return None

    def generate(self, selector: str, today: date,
                 earliest_observed=None) -> List[str]:
        """
        Ordered period labels for a range selector.

        Args:
            selector: week, month, quarter, 6months, year, all or custom
            today: reference day in the business timezone
            earliest_observed: earliest data point, only used by `all`

        Returns:
            Labels in chronological order; empty for custom and unknown selectors
        """
        first_of_month = today.replace(day=1)

        if selector == 'week':
            monday = today - timedelta(days=today.weekday())
            return [self.day_label(monday + timedelta(days=i)) for i in range(7)]

        if selector == 'month':
            days = calendar.monthrange(today.year, today.month)[1]
            return [self.day_label(first_of_month.replace(day=d)) for d in range(1, days + 1)]

        if selector == 'quarter':
            quarter_start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
            return self._month_labels(quarter_start, 3)

        if selector == '6months':
            return self._month_labels(first_of_month - relativedelta(months=5), 6)

        if selector == 'year':
            return self._month_labels(date(today.year, 1, 1), 12)

        if selector == 'all':
            earliest = self.business_date(earliest_observed)
            if earliest is None:
                fallback = self.config['ALL_FALLBACK_MONTHS']
                return self._month_labels(first_of_month - relativedelta(months=fallback - 1), fallback)
            if earliest > today:
                return [self.month_label(today)]
            start = earliest.replace(day=1)
            delta = relativedelta(first_of_month, start)
            return self._month_labels(start, delta.years * 12 + delta.months + 1)

        if selector == self.config['CUSTOM_SELECTOR']:
            return []

        logger.warning(f"Unrecognised range selector '{selector}', no periods generated")
        return []

    def trailing_days(self, today: date, days: Optional[int] = None) -> List[str]:
        """Daily labels for the last `days` days ending today"""
        days = days or self.config['DAILY_COLLECTION_DAYS']
        start = today - timedelta(days=days - 1)
        return [self.day_label(start + timedelta(days=i)) for i in range(days)]

    def window(self, selector: str, today: date,
               custom_window=None) -> Tuple[Optional[date], Optional[date]]:
        """
        Loan created-at window for a selector: (first day, last day), inclusive.

        Non-custom windows run from the start of the current period with no
        upper bound; `all` and unknown selectors are unbounded.
        """
        if selector == 'week':
            return today - timedelta(days=today.weekday()), None
        if selector == 'month':
            return today.replace(day=1), None
        if selector == 'quarter':
            return date(today.year, (today.month - 1) // 3 * 3 + 1, 1), None
        if selector == '6months':
            return today.replace(day=1) - relativedelta(months=5), None
        if selector == 'year':
            return date(today.year, 1, 1), None
        if selector == self.config['CUSTOM_SELECTOR'] and custom_window is not None:
            return custom_window.start, custom_window.end
        return None, None

    def utc_bounds(self, start: Optional[date],
                   end: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Business-day window as naive UTC datetimes: [start 00:00, end+1 00:00)"""
        lower = upper = None
        if start is not None:
            lower = datetime.combine(start, time(), self.tz).astimezone(timezone.utc).replace(tzinfo=None)
        if end is not None:
            upper = datetime.combine(end + timedelta(days=1), time(), self.tz) \
                .astimezone(timezone.utc).replace(tzinfo=None)
        return lower, upper

    # =========================================================================
    # LABELS
    # =========================================================================

    def business_date(self, value) -> Optional[date]:
        """Calendar day of a timestamp in the business timezone"""
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(self.tz).date()
        return value

    @staticmethod
    def day_label(d: date) -> str:
        return d.strftime('%Y-%m-%d')

    @staticmethod
    def month_label(d: date) -> str:
        return d.strftime('%Y-%m')

    def label(self, d: date, granularity: Granularity) -> str:
        if granularity == Granularity.DAILY:
            return self.day_label(d)
        return self.month_label(d)

    def _month_labels(self, start: date, count: int) -> List[str]:
        return [self.month_label(start + relativedelta(months=i)) for i in range(count)]

    # =========================================================================
    # FOLDING
    # =========================================================================

    def fold(self, payments: Iterable, labels: List[str],
             granularity: Granularity) -> List[PeriodBucket]:
        """Sum payments into pre-built buckets; payments outside the labels are ignored"""
        buckets = OrderedDict((label, PeriodBucket(period=label)) for label in labels)

        for payment in payments:
            paid_on = self.business_date(payment.paid_at)
            if paid_on is None:
                continue
            bucket = buckets.get(self.label(paid_on, granularity))
            if bucket is None:
                continue
            bucket.amount += payment.paid_amount
            bucket.count += 1

        return list(buckets.values())

    def fold_observed(self, payments: Iterable, start: date, end: date,
                      granularity: Granularity) -> List[PeriodBucket]:
        """Custom windows: buckets only for periods with payments, in chronological order"""
        buckets = {}

        for payment in payments:
            paid_on = self.business_date(payment.paid_at)
            if paid_on is None or paid_on < start or paid_on > end:
                continue
            label = self.label(paid_on, granularity)
            bucket = buckets.setdefault(label, PeriodBucket(period=label))
            bucket.amount += payment.paid_amount
            bucket.count += 1

        return [buckets[label] for label in sorted(buckets)]

    @staticmethod
    def earliest(payments: Iterable) -> Optional[datetime]:
        stamps = [p.paid_at for p in payments if p.paid_at is not None]
        if not stamps:
            return None
        return min(stamps, key=_sort_key)


def _sort_key(value: datetime):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


period_generator = PeriodGenerator()

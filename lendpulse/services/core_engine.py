# -*- coding: utf-8 -*-
"""
LendPulse: Core Analytics Engine
===========================================
Single source of truth for every portfolio view.

Each view is a pure function of (ledger snapshot, request, today):
  ledger rows -> DelinquencyClassifier -> DimensionAggregator
              -> MetricDeriver -> Ranker -> ViewResult

Views:
  - dimension performance (branch, region, product, county, marital status,
    age bracket, loyalty tier)
  - repayment trends and trailing daily collections
  - payer-type mix
  - NPL and overdue-loan lists
  - customer loyalty tiers

Nothing in here reads the clock or the database; the analytics service
supplies both.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import ANALYTICS_CONFIG, DIMENSIONS
from lendpulse.models.ledger import LedgerSnapshot
from lendpulse.modules.aggregation import (
    DimensionAggregator, collected_by_loan, group_payments, resolve_key_fn
)
from lendpulse.modules.delinquency import DelinquencyClassifier
from lendpulse.modules.metrics import MetricDeriver
from lendpulse.modules.periods import Granularity, PeriodGenerator
from lendpulse.modules.ranking import Ranker

logger = logging.getLogger(__name__)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CustomWindow(BaseModel):
    """Explicit date window, both days inclusive"""
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode='after')
    def check_order(self):
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")
        return self


class AnalyticsRequest(BaseModel):
    """Immutable description of one analytics request; filter changes produce a new instance"""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(..., min_length=1)
    dimension: str = Field(default='branch')
    date_range: str = Field(default='all', description="week, month, quarter, 6months, year, all, custom")
    custom_window: Optional[CustomWindow] = None
    region_id: Optional[str] = None
    branch_id: Optional[str] = None
    sort_by: Optional[str] = None
    direction: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    as_of: Optional[date] = None

    @model_validator(mode='before')
    @classmethod
    def custom_window_implies_custom(cls, data):
        if isinstance(data, dict) and data.get('custom_window') is not None:
            data = dict(data, date_range=ANALYTICS_CONFIG['CUSTOM_SELECTOR'])
        return data

    @model_validator(mode='after')
    def custom_needs_window(self):
        if self.date_range == ANALYTICS_CONFIG['CUSTOM_SELECTOR'] and self.custom_window is None:
            raise ValueError("date_range 'custom' requires a start and end date")
        return self

    @field_validator('region_id', 'branch_id', mode='before')
    @classmethod
    def all_means_unfiltered(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        if not v or v.lower() == 'all':
            return None
        return v

    @field_validator('dimension')
    @classmethod
    def known_dimension(cls, v):
        if v not in DIMENSIONS:
            raise ValueError(f"Unknown dimension '{v}'. Available: {', '.join(DIMENSIONS)}")
        return v

    @field_validator('direction')
    @classmethod
    def known_direction(cls, v):
        if v is not None and v not in ('asc', 'desc'):
            raise ValueError(f"direction must be 'asc' or 'desc', got '{v}'")
        return v

    def ledger_query(self, created_from: Optional[date] = None,
                     created_to: Optional[date] = None) -> 'LedgerQuery':
        return LedgerQuery(
            tenant_id=self.tenant_id,
            region_id=self.region_id,
            branch_id=self.branch_id,
            created_from=created_from,
            created_to=created_to,
        )


@dataclass(frozen=True)
class LedgerQuery:
    """Filters pushed down to the ledger projection"""
    tenant_id: str
    region_id: Optional[str] = None
    branch_id: Optional[str] = None
    created_from: Optional[date] = None
    created_to: Optional[date] = None


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class ViewResult:
    """Records (already ranked and truncated) plus a summary over the full set"""
    view: str
    records: List[Dict]
    summary: Dict
    warnings: List[str] = field(default_factory=list)
    meta: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'view': self.view,
            'records': self.records,
            'summary': self.summary,
            'warnings': self.warnings,
            'meta': self.meta,
        }


# ============================================================================
# ENGINE
# ============================================================================

class AnalyticsEngine:
    """Composes the analytics modules into the portfolio views."""

    def __init__(self):
        self.periods = PeriodGenerator()
        self.classifier = DelinquencyClassifier()
        self.aggregator = DimensionAggregator()
        self.deriver = MetricDeriver()
        self.ranker = Ranker()

    def selector_warning(self, request: AnalyticsRequest) -> Optional[str]:
        if self.periods.is_known(request.date_range):
            return None
        return f"Unrecognised date range '{request.date_range}'; no data returned"

    def _meta(self, request: AnalyticsRequest, today: date, **extra) -> Dict:
        meta = {
            'date_range': request.date_range,
            'as_of': today.isoformat(),
            'region_id': request.region_id,
            'branch_id': request.branch_id,
        }
        if request.custom_window is not None:
            meta['start'] = request.custom_window.start.isoformat()
            meta['end'] = request.custom_window.end.isoformat()
        meta.update(extra)
        return meta

    # ------------------------------------------------------------------
    # Dimension performance
    # ------------------------------------------------------------------

    def dimension_performance(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                              today: date) -> ViewResult:
        """
        Per-dimension disbursement, collection and NPL metrics.

        Default order is descending `disbursed`; the summary covers every key
        even when `limit` truncates the records.
        """
        view = f"dimension:{request.dimension}"
        warning = self.selector_warning(request)
        if warning:
            return ViewResult(view=view, records=[], summary=self.deriver.portfolio_summary([]),
                              warnings=[warning], meta=self._meta(request, today))

        key_fn = resolve_key_fn(request.dimension, snapshot.loans, today)
        classifications = self.classifier.classify_portfolio(snapshot.loans, snapshot.installments, today)
        accumulators = self.aggregator.aggregate(
            snapshot.loans, group_payments(snapshot.payments), classifications, key_fn
        )
        metrics = self.deriver.derive_all(accumulators)
        summary = self.deriver.portfolio_summary(metrics)

        default_key, default_direction = ANALYTICS_CONFIG['DEFAULT_DIMENSION_SORT']
        ranked = self.ranker.rank(
            metrics,
            request.sort_by or default_key,
            request.direction or default_direction,
            request.limit,
        )

        logger.info(f"Dimension view {request.dimension}: {len(snapshot.loans)} loans, "
                    f"{len(metrics)} keys, NPL {summary['nplCount']}")

        return ViewResult(
            view=view,
            records=[m.to_dict() for m in ranked],
            summary=summary,
            meta=self._meta(request, today, dimension=request.dimension),
        )

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------

    def repayment_trends(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                         today: date) -> ViewResult:
        """Collected amount and payment count per day or month of the selected range"""
        selector = request.date_range
        warnings = []

        if selector == ANALYTICS_CONFIG['CUSTOM_SELECTOR']:
            window = request.custom_window
            granularity = self.periods.granularity(selector, window)
            buckets = self.periods.fold_observed(snapshot.payments, window.start, window.end, granularity)
        else:
            granularity = self.periods.granularity(selector)
            labels = self.periods.generate(selector, today, self.periods.earliest(snapshot.payments))
            if not labels:
                warnings.append(self.selector_warning(request))
                buckets = []
            else:
                buckets = self.periods.fold(snapshot.payments, labels, granularity)

        return ViewResult(
            view='trends',
            records=[b.to_dict() for b in buckets],
            summary=self.deriver.trend_summary(buckets),
            warnings=warnings,
            meta=self._meta(request, today, granularity=granularity.value if granularity else None),
        )

    def daily_collections(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                          today: date, days: Optional[int] = None) -> ViewResult:
        """Trailing daily collection series ending today"""
        labels = self.periods.trailing_days(today, days)
        buckets = self.periods.fold(snapshot.payments, labels, Granularity.DAILY)
        return ViewResult(
            view='collections:daily',
            records=[b.to_dict() for b in buckets],
            summary=self.deriver.trend_summary(buckets),
            meta=self._meta(request, today, granularity=Granularity.DAILY.value, days=len(labels)),
        )

    # ------------------------------------------------------------------
    # Payer types
    # ------------------------------------------------------------------

    def payer_type_analysis(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                            today: date) -> ViewResult:
        """Who pays: amount and count shares per payer type for payments in the range"""
        warning = self.selector_warning(request)
        if warning:
            return ViewResult(view='payer-types', records=[], summary=self.deriver.payer_summary({}),
                              warnings=[warning], meta=self._meta(request, today))

        start, end = self.periods.window(request.date_range, today, request.custom_window)
        payments = []
        for payment in snapshot.payments:
            paid_on = self.periods.business_date(payment.paid_at)
            if start is not None and (paid_on is None or paid_on < start):
                continue
            if end is not None and (paid_on is None or paid_on > end):
                continue
            payments.append(payment)

        accumulators = self.aggregator.aggregate_payments(payments)
        records = self.ranker.rank(self.deriver.payer_type_shares(accumulators), 'amount', 'desc', request.limit)

        return ViewResult(
            view='payer-types',
            records=records,
            summary=self.deriver.payer_summary(accumulators),
            meta=self._meta(request, today),
        )

    # ------------------------------------------------------------------
    # Delinquency
    # ------------------------------------------------------------------

    def delinquency_list(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                         today: date, npl_only: bool = True) -> ViewResult:
        """
        NPL list (npl_only) or overdue-loan list.

        Sort presets: amount (overdue desc, default), percentage (turnover asc),
        days (days overdue desc). Defaults to the top 10.
        """
        view = 'npl' if npl_only else 'overdue'
        warning = self.selector_warning(request)
        if warning:
            return ViewResult(view=view, records=[], summary=self.deriver.delinquency_summary([]),
                              warnings=[warning], meta=self._meta(request, today))

        classifications = self.classifier.classify_portfolio(snapshot.loans, snapshot.installments, today)
        records = self.classifier.build_records(
            snapshot.loans, classifications, collected_by_loan(snapshot.payments), npl_only
        )
        summary = self.deriver.delinquency_summary(records)

        sort_by = request.sort_by or 'amount'
        ranked = self.ranker.rank_delinquency(
            records, sort_by, request.limit or ANALYTICS_CONFIG['TOP_N'], request.direction
        )

        logger.info(f"{view.upper()} list: {len(records)} of {len(snapshot.loans)} loans, sort={sort_by}")

        return ViewResult(
            view=view,
            records=[r.to_dict() for r in ranked],
            summary=summary,
            meta=self._meta(request, today, sort_by=sort_by),
        )

    # ------------------------------------------------------------------
    # Loyalty
    # ------------------------------------------------------------------

    def loyalty_breakdown(self, snapshot: LedgerSnapshot, request: AnalyticsRequest,
                          today: date) -> ViewResult:
        warning = self.selector_warning(request)
        if warning:
            return ViewResult(view='loyalty', records=[], summary=self.deriver.loyalty_summary({}),
                              warnings=[warning], meta=self._meta(request, today))

        tiers = self.aggregator.aggregate_loyalty(snapshot.loans)
        return ViewResult(
            view='loyalty',
            records=self.deriver.loyalty_breakdown(tiers),
            summary=self.deriver.loyalty_summary(tiers),
            meta=self._meta(request, today),
        )


# ============================================================================
# MODULE-LEVEL INSTANCE (SINGLETON)
# ============================================================================

analytics_engine = AnalyticsEngine()

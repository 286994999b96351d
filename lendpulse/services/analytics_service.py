# -*- coding: utf-8 -*-
"""
Analytics Service
Boundary between the HTTP layer, the ledger and the pure analytics engine

Responsibilities:
- Resolve "today" in the business timezone (or the request's as_of day)
- Pick the ledger window per view and fetch the snapshot
- Fan independent dashboard views out over a thread pool
- Audit-log every computed view
"""

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

from config import Config, LOCALE_CONFIG
from lendpulse.models.ledger import LedgerSnapshot
from lendpulse.services.core_engine import AnalyticsEngine, AnalyticsRequest, ViewResult, analytics_engine
from lendpulse.services.filter_service import derive_branch_options
from lendpulse.services.ledger_service import LedgerProjection, sql_ledger

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Fetches ledger snapshots and runs engine views for a request"""

    # Views whose loans are limited to the selected created-at window
    WINDOWED_VIEWS = ('dimension', 'npl', 'overdue', 'loyalty')

    VIEWS = ('dimension', 'trends', 'collections', 'payer-types', 'npl', 'overdue', 'loyalty')

    DASHBOARD_VIEWS = (
        'dimension:branch',
        'dimension:region',
        'dimension:product',
        'trends',
        'collections',
        'payer-types',
        'npl',
    )

    def __init__(self, ledger: Optional[LedgerProjection] = None,
                 engine: Optional[AnalyticsEngine] = None,
                 workers: Optional[int] = None):
        self.ledger = ledger or sql_ledger
        self.engine = engine or analytics_engine
        self.tz = ZoneInfo(LOCALE_CONFIG['timezone'])
        self._workers = workers

    def today(self, request: Optional[AnalyticsRequest] = None) -> date:
        """Reference day: the request's as_of, else the current day in the business timezone"""
        if request is not None and request.as_of is not None:
            return request.as_of
        return datetime.now(self.tz).date()

    # =========================================================================
    # VIEWS
    # =========================================================================

    def dimension_performance(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('dimension', request)

    def repayment_trends(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('trends', request)

    def daily_collections(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('collections', request)

    def payer_types(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('payer-types', request)

    def npl_loans(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('npl', request)

    def overdue_loans(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('overdue', request)

    def loyalty(self, request: AnalyticsRequest) -> ViewResult:
        return self.view('loyalty', request)

    def view(self, name: str, request: AnalyticsRequest) -> ViewResult:
        """
        Compute one named view.

        Args:
            name: one of VIEWS, or 'dimension:<dimension>'
            request: validated AnalyticsRequest

        Returns:
            ViewResult

        Raises:
            ValueError: unknown view name or invalid sort key
        """
        if name.startswith('dimension:'):
            request = AnalyticsRequest.model_validate(
                dict(request.model_dump(), dimension=name.split(':', 1)[1])
            )
            name = 'dimension'
        if name not in self.VIEWS:
            raise ValueError(f"Unknown view '{name}'. Available: {', '.join(self.VIEWS)}")

        today = self.today(request)
        snapshot = self._snapshot(request, today, windowed=name in self.WINDOWED_VIEWS)

        if name == 'dimension':
            result = self.engine.dimension_performance(snapshot, request, today)
        elif name == 'trends':
            result = self.engine.repayment_trends(snapshot, request, today)
        elif name == 'collections':
            result = self.engine.daily_collections(snapshot, request, today)
        elif name == 'payer-types':
            result = self.engine.payer_type_analysis(snapshot, request, today)
        elif name == 'npl':
            result = self.engine.delinquency_list(snapshot, request, today, npl_only=True)
        elif name == 'overdue':
            result = self.engine.delinquency_list(snapshot, request, today, npl_only=False)
        else:
            result = self.engine.loyalty_breakdown(snapshot, request, today)

        self._log_audit(result.view, request, result)
        return result

    def _snapshot(self, request: AnalyticsRequest, today: date, windowed: bool) -> LedgerSnapshot:
        if not windowed:
            return self.ledger.snapshot(request.ledger_query())
        if not self.engine.periods.is_known(request.date_range):
            return LedgerSnapshot()

        start, end = self.engine.periods.window(request.date_range, today, request.custom_window)
        return self.ledger.snapshot(request.ledger_query(start, end))

    # =========================================================================
    # DASHBOARD FAN-OUT
    # =========================================================================

    def dashboard(self, request: AnalyticsRequest,
                  views: Optional[List[str]] = None) -> Dict[str, ViewResult]:
        """
        Compute several independent views for one request.

        Every view gets its own snapshot and accumulators. A view that fails is
        logged and returned empty with a warning; the others are unaffected.
        """
        views = list(views or self.DASHBOARD_VIEWS)
        request = request.model_copy(update={'as_of': self.today(request)})
        workers = self._fan_out_workers()

        app = current_app._get_current_object() if has_app_context() else None

        def run(name):
            if app is not None:
                with app.app_context():
                    return self._safe_view(name, request)
            return self._safe_view(name, request)

        if workers <= 1 or len(views) <= 1:
            results = [run(name) for name in views]
        else:
            with ThreadPoolExecutor(max_workers=min(workers, len(views))) as pool:
                results = list(pool.map(run, views))

        logger.info(f"Dashboard for tenant {request.tenant_id}: {len(views)} views, {workers} workers")
        return dict(zip(views, results))

    def _safe_view(self, name: str, request: AnalyticsRequest) -> ViewResult:
        try:
            return self.view(name, request)
        except Exception as e:
            logger.exception(f"Dashboard view {name} failed: {str(e)}")
            return ViewResult(view=name, records=[], summary={}, warnings=[f"{name} failed: {str(e)}"])

    def _fan_out_workers(self) -> int:
        if self._workers is not None:
            return self._workers
        if has_app_context():
            return current_app.config.get('ANALYTICS_FAN_OUT_WORKERS', Config.ANALYTICS_FAN_OUT_WORKERS)
        return Config.ANALYTICS_FAN_OUT_WORKERS

    # =========================================================================
    # FILTER OPTIONS
    # =========================================================================

    def filter_options(self, tenant_id: str, region: Optional[str] = None) -> Dict:
        """Regions plus the branches selectable under `region` ('all' or None for every branch)"""
        regions = self.ledger.regions(tenant_id)
        branches = self.ledger.branches(tenant_id)
        return {
            'regions': [{'id': r.id, 'name': r.name} for r in regions],
            'branches': [
                {'id': b.id, 'name': b.name, 'code': b.code, 'region_id': b.region_id}
                for b in derive_branch_options(branches, region, regions)
            ],
        }

    # =========================================================================
    # AUDIT
    # =========================================================================

    def _log_audit(self, view: str, request: AnalyticsRequest, result: ViewResult):
        logger.info(
            f"[audit] tenant={request.tenant_id} view={view} "
            f"request={self._hash_request(request)[:12]} records={len(result.records)} "
            f"warnings={len(result.warnings)}"
        )

    @staticmethod
    def _hash_request(request: AnalyticsRequest) -> str:
        """SHA256 of the request for the audit trail"""
        payload_json = json.dumps(request.model_dump(), sort_keys=True, default=str)
        return hashlib.sha256(payload_json.encode()).hexdigest()


# Singleton instance
analytics_service = AnalyticsService()

# -*- coding: utf-8 -*-
"""
LendPulse - Tests for the analytics engine and request models
"""

import pytest
import sys
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

from pydantic import ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lendpulse.models.ledger import InstallmentRow, LedgerSnapshot, LoanRow, PaymentRow
from lendpulse.services.core_engine import AnalyticsEngine, AnalyticsRequest, CustomWindow

TODAY = date(2026, 4, 15)


def build_snapshot():
    loans = [
        LoanRow(id='L1', scored_amount=10000, total_payable=12000, weekly_payment=1000,
                branch_id='1', branch_name='Thika', region_id='10', region_name='Central',
                product_name='Biashara', customer_id='c1'),
        LoanRow(id='L2', scored_amount=20000, total_payable=24000, weekly_payment=2000,
                branch_id='1', branch_name='Thika', region_id='10', region_name='Central',
                product_name='Inuka', customer_id='c1'),
        LoanRow(id='L3', scored_amount=5000, total_payable=6000, weekly_payment=500,
                branch_id='2', branch_name='Mombasa', region_id='20', region_name='Coast',
                product_name='Biashara', customer_id='c2'),
    ]
    payments = [
        PaymentRow(loan_id='L1', paid_amount=3000, paid_at=datetime(2026, 4, 2, 9), payer_type='customer'),
        PaymentRow(loan_id='L2', paid_amount=6000, paid_at=datetime(2026, 5, 2, 9), payer_type='guarantor'),
        PaymentRow(loan_id='L3', paid_amount=6000, paid_at=datetime(2026, 1, 10, 9), payer_type='customer'),
    ]
    installments = [
        InstallmentRow(loan_id='L1', due_date=TODAY - timedelta(days=120), due_amount=2000, status='overdue'),
        InstallmentRow(loan_id='L2', due_date=TODAY - timedelta(days=14), due_amount=1500,
                       paid_amount=500, status='partial'),
    ]
    return LedgerSnapshot(loans=loans, payments=payments, installments=installments)


class TestAnalyticsRequest:
    """Request validation"""

    def test_defaults(self):
        request = AnalyticsRequest(tenant_id='t1')
        assert request.date_range == 'all'
        assert request.dimension == 'branch'
        assert request.region_id is None

    def test_custom_window_forces_custom_range(self):
        request = AnalyticsRequest(tenant_id='t1', date_range='month',
                                   custom_window={'start': '2026-01-01', 'end': '2026-01-31'})
        assert request.date_range == 'custom'
        assert request.custom_window.start == date(2026, 1, 1)

    def test_custom_without_window_is_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsRequest(tenant_id='t1', date_range='custom')

    def test_window_end_before_start_is_rejected(self):
        with pytest.raises(ValidationError):
            CustomWindow(start=date(2026, 2, 1), end=date(2026, 1, 1))

    def test_all_means_no_filter(self):
        request = AnalyticsRequest(tenant_id='t1', region_id='all', branch_id='ALL')
        assert request.region_id is None
        assert request.branch_id is None

    def test_unknown_dimension_is_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsRequest(tenant_id='t1', dimension='officer')

    def test_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            AnalyticsRequest(tenant_id='t1', limit=0)

    def test_tenant_is_required(self):
        with pytest.raises(ValidationError):
            AnalyticsRequest(tenant_id='')

    def test_request_is_immutable(self):
        request = AnalyticsRequest(tenant_id='t1')
        with pytest.raises(ValidationError):
            request.date_range = 'week'


class TestDimensionView:
    """Dimension performance view"""

    def setup_method(self):
        self.engine = AnalyticsEngine()
        self.snapshot = build_snapshot()

    def test_branch_view(self):
        result = self.engine.dimension_performance(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)

        assert [r['name'] for r in result.records] == ['Thika', 'Mombasa']
        thika = result.records[0]
        assert thika['disbursed'] == 30000
        assert thika['collected'] == 9000
        assert thika['collectionRate'] == 25.0
        assert thika['nplCount'] == 1
        assert thika['nplAmount'] == 9000  # 12000 - 3000 on L1
        assert thika['arrearsAmount'] == 3000  # 2000 on L1 + 1000 on L2
        assert thika['loanCount'] == 2
        assert result.records[1]['outstanding'] == 0

    def test_summary_ignores_limit(self):
        request = AnalyticsRequest(tenant_id='t1', limit=1)
        result = self.engine.dimension_performance(self.snapshot, request, TODAY)
        assert len(result.records) == 1
        assert result.summary['totalDisbursed'] == 35000
        assert result.summary['dimensionCount'] == 2

    def test_sort_override(self):
        request = AnalyticsRequest(tenant_id='t1', dimension='product', sort_by='collectionRate', direction='asc')
        result = self.engine.dimension_performance(self.snapshot, request, TODAY)
        rates = [r['collectionRate'] for r in result.records]
        assert rates == sorted(rates)

    def test_unknown_sort_key(self):
        request = AnalyticsRequest(tenant_id='t1', sort_by='officer')
        with pytest.raises(ValueError):
            self.engine.dimension_performance(self.snapshot, request, TODAY)

    def test_empty_snapshot_is_well_formed(self):
        result = self.engine.dimension_performance(LedgerSnapshot(), AnalyticsRequest(tenant_id='t1'), TODAY)
        assert result.records == []
        assert result.summary['totalLoans'] == 0
        assert result.summary['avgCollectionRate'] == 0.0

    def test_unknown_range_warns(self):
        request = AnalyticsRequest(tenant_id='t1', date_range='fortnight')
        result = self.engine.dimension_performance(self.snapshot, request, TODAY)
        assert result.records == []
        assert 'fortnight' in result.warnings[0]

    def test_npl_never_exceeds_its_dimension(self):
        """Mixed portfolio: NPL count and amount stay within each key and the summary"""
        branches = ['Thika', 'Mombasa', 'Nakuru', None]
        loans, payments, installments = [], [], []
        for i in range(24):
            loan_id = f'M{i}'
            branch = branches[i % 4]
            loans.append(LoanRow(id=loan_id, scored_amount=1000 * (i + 1), total_payable=1200 * (i + 1),
                                 branch_id=str(i % 4) if branch else None, branch_name=branch))
            if i % 3:
                payments.append(PaymentRow(loan_id=loan_id, paid_amount=300 * i, paid_at=datetime(2026, 3, 1)))
            if i % 2:
                installments.append(InstallmentRow(
                    loan_id=loan_id, due_date=TODAY - timedelta(days=30 * (i % 5) + 10),
                    due_amount=400, paid_amount=100 * (i % 3), status='overdue' if i % 3 else 'partial',
                ))
        snapshot = LedgerSnapshot(loans=loans, payments=payments, installments=installments)

        result = self.engine.dimension_performance(snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)

        assert 'Unknown' in {r['name'] for r in result.records}
        assert result.summary['nplCount'] > 0
        for record in result.records:
            assert record['nplCount'] <= record['loanCount']
            assert record['nplAmount'] <= record['payable']
        assert result.summary['nplCount'] <= result.summary['totalLoans']
        assert result.summary['totalNplAmount'] <= result.summary['totalPayable']

    def test_gender_view_with_daily_sales(self):
        loans = [
            LoanRow(id='G1', scored_amount=1000, total_payable=1200, customer_id='c1',
                    customer_gender='Female', customer_daily_sales=2000),
            LoanRow(id='G2', scored_amount=3000, total_payable=3600, customer_id='c2',
                    customer_gender='F', customer_daily_sales=1000),
            LoanRow(id='G3', scored_amount=500, total_payable=600, customer_id='c3', customer_gender='male'),
        ]
        request = AnalyticsRequest(tenant_id='t1', dimension='gender')
        result = self.engine.dimension_performance(LedgerSnapshot(loans=loans), request, TODAY)

        female, male = result.records
        assert female['name'] == 'Female'
        assert female['customerCount'] == 2
        assert female['avgDailySales'] == 1500
        assert male['avgDailySales'] == 0

    def test_idempotent(self):
        request = AnalyticsRequest(tenant_id='t1', dimension='region')
        first = self.engine.dimension_performance(self.snapshot, request, TODAY).to_dict()
        second = self.engine.dimension_performance(self.snapshot, request, TODAY).to_dict()
        assert first == second

    def test_parallel_calls_are_isolated(self):
        request = AnalyticsRequest(tenant_id='t1', dimension='product')
        expected = self.engine.dimension_performance(self.snapshot, request, TODAY).to_dict()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda _: self.engine.dimension_performance(self.snapshot, request, TODAY).to_dict(),
                range(16),
            ))
        assert all(r == expected for r in results)


class TestTrendViews:
    """Repayment trends and daily collections"""

    def setup_method(self):
        self.engine = AnalyticsEngine()
        self.snapshot = build_snapshot()

    def test_quarter_trend(self):
        request = AnalyticsRequest(tenant_id='t1', date_range='quarter')
        result = self.engine.repayment_trends(self.snapshot, request, TODAY)

        assert [r['period'] for r in result.records] == ['2026-04', '2026-05', '2026-06']
        assert [r['amount'] for r in result.records] == [3000.0, 6000.0, 0.0]
        assert result.meta['granularity'] == 'monthly'
        assert result.summary['transactionCount'] == 2

    def test_all_starts_at_first_payment(self):
        request = AnalyticsRequest(tenant_id='t1')
        result = self.engine.repayment_trends(self.snapshot, request, TODAY)
        assert result.records[0]['period'] == '2026-01'
        assert result.records[-1]['period'] == '2026-04'

    def test_custom_trend_only_observed(self):
        request = AnalyticsRequest(tenant_id='t1', custom_window={'start': '2026-01-01', 'end': '2026-04-30'})
        result = self.engine.repayment_trends(self.snapshot, request, TODAY)
        assert [r['period'] for r in result.records] == ['2026-01', '2026-04']

    def test_unknown_range_trend(self):
        request = AnalyticsRequest(tenant_id='t1', date_range='fortnight')
        result = self.engine.repayment_trends(self.snapshot, request, TODAY)
        assert result.records == []
        assert result.warnings

    def test_daily_collections(self):
        result = self.engine.daily_collections(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)
        assert len(result.records) == 30
        assert result.summary['totalAmount'] == 3000


class TestOtherViews:
    """Payer types, delinquency lists and loyalty"""

    def setup_method(self):
        self.engine = AnalyticsEngine()
        self.snapshot = build_snapshot()

    def test_payer_types_respect_range(self):
        request = AnalyticsRequest(tenant_id='t1', date_range='month')
        result = self.engine.payer_type_analysis(self.snapshot, request, TODAY)
        # May payment is after today but still inside the open-ended month window
        assert {r['name'] for r in result.records} == {'Customer', 'Guarantor'}
        assert result.summary['totalAmount'] == 9000

    def test_payer_types_all_time(self):
        result = self.engine.payer_type_analysis(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)
        assert result.records[0]['name'] == 'Customer'
        assert result.records[0]['amountShare'] == 60

    def test_npl_list(self):
        result = self.engine.delinquency_list(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)
        assert [r['loanId'] for r in result.records] == ['L1']
        assert result.summary['totalOverdue'] == 2000

    def test_overdue_list_sorted_by_amount(self):
        result = self.engine.delinquency_list(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY,
                                              npl_only=False)
        assert [r['loanId'] for r in result.records] == ['L1', 'L2']
        assert result.records[1]['overdueAmount'] == 1000

    def test_overdue_list_by_days(self):
        request = AnalyticsRequest(tenant_id='t1', sort_by='days', limit=1)
        result = self.engine.delinquency_list(self.snapshot, request, TODAY, npl_only=False)
        assert [r['loanId'] for r in result.records] == ['L1']
        assert result.summary['loanCount'] == 2

    def test_loyalty(self):
        result = self.engine.loyalty_breakdown(self.snapshot, AnalyticsRequest(tenant_id='t1'), TODAY)
        by_name = {r['name']: r for r in result.records}
        assert by_name['Repeat (2-4 loans)']['customers'] == 1
        assert by_name['First Time (1 loan)']['customers'] == 1
        assert result.summary['totalCustomers'] == 2

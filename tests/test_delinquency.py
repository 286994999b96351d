# -*- coding: utf-8 -*-
"""
LendPulse - Unit tests for the delinquency classifier
"""

import pytest
import sys
import os
from datetime import date, timedelta
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lendpulse.models.ledger import InstallmentRow, LoanRow
from lendpulse.modules.delinquency import DelinquencyClassifier

TODAY = date(2026, 4, 15)


def loan(loan_id='L1', **kwargs):
    data = {'id': loan_id, 'scored_amount': 10000, 'total_payable': 12000,
            'weekly_payment': 1000, 'branch_name': 'Thika'}
    data.update(kwargs)
    return LoanRow(**data)


def installment(days_ago, due=1000, status='overdue', loan_id='L1', **kwargs):
    return InstallmentRow(loan_id=loan_id, due_date=TODAY - timedelta(days=days_ago),
                          due_amount=due, status=status, **kwargs)


class TestClassify:
    """Per-loan arrears and NPL rules"""

    def setup_method(self):
        self.classifier = DelinquencyClassifier()

    def test_unpaid_installment_120_days_late_is_npl(self):
        """Single overdue installment 120 days past due, nothing paid"""
        result = self.classifier.classify(loan(), [installment(120, paid_amount=0)], TODAY)
        assert result.is_npl is True
        assert result.arrears == Decimal('1000')
        assert result.max_days_overdue == 120

    def test_exactly_90_days_is_npl(self):
        result = self.classifier.classify(loan(), [installment(90)], TODAY)
        assert result.is_npl is True

    def test_89_days_is_not_npl(self):
        result = self.classifier.classify(loan(), [installment(89)], TODAY)
        assert result.is_npl is False
        assert result.arrears == Decimal('1000')

    def test_precomputed_days_overdue_wins(self):
        result = self.classifier.classify(loan(), [installment(10, days_overdue=95)], TODAY)
        assert result.max_days_overdue == 95
        assert result.is_npl is True

    def test_only_overdue_and_partial_count(self):
        installments = [
            installment(100, status='paid'),
            installment(100, status='current'),
            installment(30, status='partial', paid_amount=400),
        ]
        result = self.classifier.classify(loan(), installments, TODAY)
        assert result.arrears == Decimal('600')
        assert result.max_days_overdue == 30

    def test_future_installments_are_ignored(self):
        result = self.classifier.classify(loan(), [installment(-5)], TODAY)
        assert result.arrears == Decimal('0')
        assert result.max_days_overdue == 0

    def test_due_today_counts(self):
        result = self.classifier.classify(loan(), [installment(0)], TODAY)
        assert result.arrears == Decimal('1000')

    def test_overpaid_installment_does_not_reduce_arrears(self):
        installments = [
            installment(40, due=1000, paid_amount=1200),
            installment(20, due=500, status='partial', paid_amount=0),
        ]
        result = self.classifier.classify(loan(), installments, TODAY)
        assert result.arrears == Decimal('500')

    def test_principal_and_interest_take_precedence_over_paid_amount(self):
        inst = installment(40, principal_paid=300, interest_paid=100, paid_amount=900)
        result = self.classifier.classify(loan(), [inst], TODAY)
        assert result.arrears == Decimal('600')

    def test_interest_only_payment(self):
        inst = installment(40, interest_paid=250)
        result = self.classifier.classify(loan(), [inst], TODAY)
        assert result.arrears == Decimal('750')

    def test_no_installments_is_never_npl(self):
        result = self.classifier.classify(loan(), [], TODAY)
        assert result.is_npl is False
        assert result.arrears == Decimal('0')

    def test_late_but_fully_paid_is_not_npl(self):
        """NPL needs positive arrears as well as 90+ days"""
        result = self.classifier.classify(loan(), [installment(120, paid_amount=1000)], TODAY)
        assert result.is_npl is False
        assert result.max_days_overdue == 120

    def test_installment_of_other_loan_is_rejected(self):
        with pytest.raises(ValueError):
            self.classifier.classify(loan('L1'), [installment(10, loan_id='L2')], TODAY)

    def test_same_inputs_same_result(self):
        installments = [installment(120), installment(60, status='partial', paid_amount=200)]
        first = self.classifier.classify(loan(), installments, TODAY)
        second = self.classifier.classify(loan(), installments, TODAY)
        assert first == second

    def test_result_depends_on_reference_day(self):
        installments = [installment(60)]
        assert not self.classifier.classify(loan(), installments, TODAY).is_npl
        assert self.classifier.classify(loan(), installments, TODAY + timedelta(days=30)).is_npl


class TestPortfolioAndRecords:
    """Portfolio classification and delinquency records"""

    def setup_method(self):
        self.classifier = DelinquencyClassifier()
        self.loans = [
            loan('L1', weekly_payment=1500, repayment_state='defaulted'),
            loan('L2', branch_name=None),
            loan('L3'),
        ]
        self.installments = [
            installment(120, loan_id='L1', due=3000),
            installment(30, loan_id='L2', due=800),
            installment(10, loan_id='L3', status='paid'),
            installment(200, loan_id='L9'),  # loan not in the set
        ]

    def test_classify_portfolio_groups_by_loan(self):
        result = self.classifier.classify_portfolio(self.loans, self.installments, TODAY)
        assert set(result) == {'L1', 'L2', 'L3'}
        assert result['L1'].is_npl
        assert not result['L2'].is_npl
        assert result['L2'].arrears == Decimal('800')
        assert result['L3'].arrears == Decimal('0')

    def test_npl_records(self):
        classifications = self.classifier.classify_portfolio(self.loans, self.installments, TODAY)
        records = self.classifier.build_records(
            self.loans, classifications, {'L1': Decimal('4000')}, npl_only=True
        )
        assert len(records) == 1
        row = records[0].to_dict()
        assert row['loanId'] == 'L1'
        assert row['overdueAmount'] == 3000
        assert row['totalAmount'] == 12000
        assert row['paidAmount'] == 4000
        assert row['turnoverPercentage'] == 33
        assert row['daysOverdue'] == 120
        assert row['weeklyPayment'] == 1500
        assert row['repaymentState'] == 'defaulted'
        assert row['isNpl'] is True

    def test_overdue_records_include_any_arrears(self):
        classifications = self.classifier.classify_portfolio(self.loans, self.installments, TODAY)
        records = self.classifier.build_records(self.loans, classifications, {}, npl_only=False)
        assert [r.loan_id for r in records] == ['L1', 'L2']
        assert records[1].branch == 'Unknown'
        assert records[1].turnover_percentage == 0

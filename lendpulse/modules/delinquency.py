# -*- coding: utf-8 -*-
"""
LendPulse - Delinquency classifier
Per-loan arrears and NPL status from installment rows

Rules:
- only installments with due_date <= today and status overdue/partial count
- arrears = sum of positive (due_amount - amount paid) remainders
- days overdue = precomputed days_overdue, else today - due_date
- NPL iff max days overdue >= 90 and arrears > 0
- a loan without installments is never NPL
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from config import ANALYTICS_CONFIG
from lendpulse.modules.metrics import money, percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Delinquency state of one loan at a reference day"""
    arrears: Decimal
    is_npl: bool
    max_days_overdue: int


NOT_DELINQUENT = Classification(arrears=Decimal('0'), is_npl=False, max_days_overdue=0)


@dataclass
class DelinquencyRecord:
    """Row of the NPL and overdue-loan lists"""
    loan_id: str
    branch: str
    overdue_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    turnover_percentage: int
    days_overdue: int
    weekly_payment: Decimal
    repayment_state: Optional[str]
    is_npl: bool

    def to_dict(self) -> Dict:
        return {
            'loanId': self.loan_id,
            'branch': self.branch,
            'overdueAmount': money(self.overdue_amount),
            'totalAmount': money(self.total_amount),
            'paidAmount': money(self.paid_amount),
            'turnoverPercentage': self.turnover_percentage,
            'daysOverdue': self.days_overdue,
            'weeklyPayment': money(self.weekly_payment),
            'repaymentState': self.repayment_state or '',
            'isNpl': self.is_npl,
        }


class DelinquencyClassifier:
    """
    Installment-based arrears and NPL classification.

    The reference day is always supplied by the caller so results are
    reproducible for a given day and set of rows.
    """

    def __init__(self):
        self.npl_days = ANALYTICS_CONFIG['NPL_DAYS_THRESHOLD']
        self.arrears_statuses = frozenset(ANALYTICS_CONFIG['ARREARS_STATUSES'])
        self.unknown = ANALYTICS_CONFIG['UNKNOWN_KEY']

    def classify(self, loan, installments: Iterable, today: date) -> Classification:
        """
        Classify a single loan.

        Args:
            loan: LoanRow
            installments: InstallmentRow list of this loan
            today: reference day in the business timezone

        Returns:
            Classification(arrears, is_npl, max_days_overdue)

        Raises:
            ValueError: an installment belongs to a different loan
        """
        arrears = Decimal('0')
        max_days = 0

        for inst in installments:
            if inst.loan_id != loan.id:
                raise ValueError(
                    f"Installment {inst.id} belongs to loan {inst.loan_id}, not {loan.id}"
                )
            if inst.due_date is None or inst.due_date > today:
                continue
            if inst.status not in self.arrears_statuses:
                continue

            remainder = inst.due_amount - inst.amount_paid
            if remainder > 0:
                arrears += remainder

            if inst.days_overdue is not None:
                days = inst.days_overdue
            else:
                days = (today - inst.due_date).days
            max_days = max(max_days, days)

        return Classification(
            arrears=arrears,
            is_npl=max_days >= self.npl_days and arrears > 0,
            max_days_overdue=max_days,
        )

    def classify_portfolio(self, loans: Iterable, installments: Iterable,
                           today: date) -> Dict[str, Classification]:
        """Classification per loan id; installments of loans outside `loans` are ignored"""
        by_loan = defaultdict(list)
        for inst in installments:
            by_loan[inst.loan_id].append(inst)

        classifications = {}
        for loan in loans:
            classifications[loan.id] = self.classify(loan, by_loan.get(loan.id, ()), today)

        npl = sum(1 for c in classifications.values() if c.is_npl)
        logger.debug(f"Classified {len(classifications)} loans, {npl} NPL")
        return classifications

    def build_records(self, loans: Iterable, classifications: Mapping[str, Classification],
                      collected: Mapping[str, Decimal], npl_only: bool) -> List[DelinquencyRecord]:
        """
        Rows for the NPL list (npl_only) or the overdue list (any arrears).

        paidAmount is the loan's collected total; turnover is collected / payable
        as a whole percentage.
        """
        records = []
        for loan in loans:
            c = classifications.get(loan.id, NOT_DELINQUENT)
            if npl_only and not c.is_npl:
                continue
            if not npl_only and c.arrears <= 0:
                continue

            paid = collected.get(loan.id, Decimal('0'))
            records.append(DelinquencyRecord(
                loan_id=loan.id,
                branch=loan.branch_name or self.unknown,
                overdue_amount=c.arrears,
                total_amount=loan.total_payable,
                paid_amount=paid,
                turnover_percentage=int(percentage(paid, loan.total_payable, 0)),
                days_overdue=c.max_days_overdue,
                weekly_payment=loan.weekly_payment,
                repayment_state=loan.repayment_state,
                is_npl=c.is_npl,
            ))
        return records


delinquency_classifier = DelinquencyClassifier()

# -*- coding: utf-8 -*-
"""
Ledger Projection Service
Read-only access to loans, payments and installments for the analytics engine

Responsibilities:
- Apply tenant, status, branch/region and created-at filters
- Fetch payments and installments for the resulting loan-id set
- Normalise rows into validated LoanRow/PaymentRow/InstallmentRow models
- Turn fetch failures into empty row sets (logged), never into crashes

Rows that break the shape contract (a payment without loan_id, a loan
without id) raise LedgerShapeError at ingestion.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import func, or_

from config import ANALYTICS_CONFIG
from lendpulse.models.ledger import (
    BranchRow, InstallmentRow, LedgerSnapshot, LoanRow, PaymentRow, RegionRow
)
from lendpulse.modules.periods import period_generator

logger = logging.getLogger(__name__)


class LedgerShapeError(ValueError):
    """A ledger row violates the basic shape contract"""


def to_rows(model, records: Iterable[Dict]) -> List:
    """Validate raw dicts into row models, rejecting malformed rows"""
    rows = []
    for index, record in enumerate(records):
        try:
            rows.append(model.model_validate(record))
        except ValidationError as e:
            raise LedgerShapeError(f"{model.__name__} #{index} rejected: {e}") from e
    return rows


def _chunks(values: Sequence, size: int):
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _db_id(value: str):
    """Ledger ids are strings; integer keys go back to int for the query"""
    return int(value) if value.isdigit() else value


class LedgerProjection:
    """
    Base read contract.

    Subclasses implement the fetch_* methods; callers use snapshot(),
    branches() and regions(), which absorb fetch failures.
    """

    def __init__(self):
        self.disbursed_status = ANALYTICS_CONFIG['DISBURSED_STATUS']

    def fetch_loans(self, query) -> List[LoanRow]:
        raise NotImplementedError

    def fetch_payments(self, query, loan_ids: List[str]) -> List[PaymentRow]:
        raise NotImplementedError

    def fetch_installments(self, query, loan_ids: List[str]) -> List[InstallmentRow]:
        raise NotImplementedError

    def fetch_branches(self, tenant_id: str) -> List[BranchRow]:
        raise NotImplementedError

    def fetch_regions(self, tenant_id: str) -> List[RegionRow]:
        raise NotImplementedError

    def snapshot(self, query) -> LedgerSnapshot:
        """Loans for the query plus their payments and installments"""
        loans = self._safe('loans', self.fetch_loans, query)

        unique = {}
        for loan in loans:
            unique.setdefault(loan.id, loan)
        loans = list(unique.values())

        if not loans:
            logger.info(f"Ledger: no loans for tenant {query.tenant_id}")
            return LedgerSnapshot()

        loan_ids = [loan.id for loan in loans]
        payments = self._safe('payments', self.fetch_payments, query, loan_ids)
        installments = self._safe('installments', self.fetch_installments, query, loan_ids)

        logger.info(f"Ledger: tenant {query.tenant_id} -> {len(loans)} loans, "
                    f"{len(payments)} payments, {len(installments)} installments")

        return LedgerSnapshot(loans=loans, payments=payments, installments=installments)

    def branches(self, tenant_id: str) -> List[BranchRow]:
        return self._safe('branches', self.fetch_branches, tenant_id)

    def regions(self, tenant_id: str) -> List[RegionRow]:
        return self._safe('regions', self.fetch_regions, tenant_id)

    @staticmethod
    def _safe(what: str, fetch, *args) -> List:
        try:
            return fetch(*args)
        except LedgerShapeError:
            raise
        except Exception as e:
            logger.exception(f"Ledger fetch of {what} failed, continuing with no rows: {str(e)}")
            return []


# =============================================================================
# SQL ADAPTER
# =============================================================================

class SQLLedgerProjection(LedgerProjection):
    """Ledger over the Flask-SQLAlchemy models"""

    def __init__(self, session=None):
        super().__init__()
        self._session = session
        self.chunk_size = ANALYTICS_CONFIG['LOAN_ID_CHUNK_SIZE']

    @property
    def session(self):
        if self._session is not None:
            return self._session
        from lendpulse import db
        return db.session

    def fetch_loans(self, query) -> List[LoanRow]:
        from lendpulse.models.database import Branch, Customer, Loan, Region

        region_of_loan = func.coalesce(Loan.region_id, Branch.region_id)

        q = (
            self.session.query(Loan, Branch, Region, Customer)
            .outerjoin(Branch, Loan.branch_id == Branch.id)
            .outerjoin(Region, Region.id == region_of_loan)
            .outerjoin(Customer, Loan.customer_id == Customer.id)
            .filter(Loan.tenant_id == query.tenant_id)
            .filter(Loan.status == self.disbursed_status)
        )

        if query.branch_id:
            q = q.filter(Loan.branch_id == _db_id(query.branch_id))
        if query.region_id:
            q = q.filter(or_(region_of_loan == _db_id(query.region_id), Region.name == query.region_id))

        lower, upper = period_generator.utc_bounds(query.created_from, query.created_to)
        if lower is not None:
            q = q.filter(Loan.created_at >= lower)
        if upper is not None:
            q = q.filter(Loan.created_at < upper)

        records = []
        for loan, branch, region, customer in q.order_by(Loan.id).all():
            records.append({
                'id': loan.id,
                'scored_amount': loan.scored_amount,
                'total_payable': loan.total_payable,
                'weekly_payment': loan.weekly_payment,
                'status': loan.status,
                'repayment_state': loan.repayment_state,
                'created_at': loan.created_at,
                'disbursed_at': loan.disbursed_at,
                'branch_id': loan.branch_id,
                'branch_code': branch.code if branch else None,
                'branch_name': branch.name if branch else None,
                'region_id': region.id if region else loan.region_id,
                'region_name': region.name if region else None,
                'product_name': loan.product_name,
                'product_type': loan.product_type,
                'customer_id': loan.customer_id,
                'customer_date_of_birth': customer.date_of_birth if customer else None,
                'customer_county': customer.county if customer else None,
                'customer_marital_status': customer.marital_status if customer else None,
                'customer_gender': customer.gender if customer else None,
                'customer_business_type': customer.business_type if customer else None,
                'customer_daily_sales': customer.daily_sales if customer else None,
            })
        return to_rows(LoanRow, records)

    def fetch_payments(self, query, loan_ids: List[str]) -> List[PaymentRow]:
        from lendpulse.models.database import LoanPayment

        records = []
        for chunk in _chunks([_db_id(i) for i in loan_ids], self.chunk_size):
            payments = (
                self.session.query(LoanPayment)
                .filter(LoanPayment.tenant_id == query.tenant_id)
                .filter(LoanPayment.loan_id.in_(chunk))
                .order_by(LoanPayment.id)
                .all()
            )
            records.extend({
                'id': p.id,
                'loan_id': p.loan_id,
                'paid_amount': p.paid_amount,
                'paid_at': p.paid_at,
                'payer_type': p.payer_type,
            } for p in payments)
        return to_rows(PaymentRow, records)

    def fetch_installments(self, query, loan_ids: List[str]) -> List[InstallmentRow]:
        from lendpulse.models.database import LoanInstallment

        records = []
        for chunk in _chunks([_db_id(i) for i in loan_ids], self.chunk_size):
            installments = (
                self.session.query(LoanInstallment)
                .filter(LoanInstallment.tenant_id == query.tenant_id)
                .filter(LoanInstallment.loan_id.in_(chunk))
                .order_by(LoanInstallment.loan_id, LoanInstallment.due_date)
                .all()
            )
            records.extend({
                'id': i.id,
                'loan_id': i.loan_id,
                'installment_number': i.installment_number,
                'due_date': i.due_date,
                'due_amount': i.due_amount,
                'principal_paid': i.principal_paid,
                'interest_paid': i.interest_paid,
                'paid_amount': i.paid_amount,
                'status': i.status,
                'days_overdue': i.days_overdue,
            } for i in installments)
        return to_rows(InstallmentRow, records)

    def fetch_branches(self, tenant_id: str) -> List[BranchRow]:
        from lendpulse.models.database import Branch

        branches = (
            self.session.query(Branch)
            .filter(Branch.tenant_id == tenant_id)
            .order_by(Branch.name)
            .all()
        )
        return to_rows(BranchRow, (
            {'id': b.id, 'name': b.name, 'code': b.code, 'region_id': b.region_id}
            for b in branches
        ))

    def fetch_regions(self, tenant_id: str) -> List[RegionRow]:
        from lendpulse.models.database import Region

        regions = (
            self.session.query(Region)
            .filter(Region.tenant_id == tenant_id)
            .order_by(Region.name)
            .all()
        )
        return to_rows(RegionRow, ({'id': r.id, 'name': r.name} for r in regions))


# =============================================================================
# IN-MEMORY ADAPTER
# =============================================================================

class InMemoryLedgerProjection(LedgerProjection):
    """
    Ledger over plain row dicts for one tenant (imports, tests).

    Rows are validated on construction. Loans without a region inherit the
    region of their branch.
    """

    def __init__(self, tenant_id: str, loans: Optional[List[Dict]] = None,
                 payments: Optional[List[Dict]] = None,
                 installments: Optional[List[Dict]] = None,
                 branches: Optional[List[Dict]] = None,
                 regions: Optional[List[Dict]] = None):
        super().__init__()
        self.tenant_id = tenant_id
        self._branches = to_rows(BranchRow, branches or [])
        self._regions = to_rows(RegionRow, regions or [])
        self._payments = to_rows(PaymentRow, payments or [])
        self._installments = to_rows(InstallmentRow, installments or [])

        branch_by_id = {b.id: b for b in self._branches}
        region_by_id = {r.id: r for r in self._regions}
        self._loans = []
        for loan in to_rows(LoanRow, loans or []):
            update = {}
            branch = branch_by_id.get(loan.branch_id)
            if branch is not None:
                if loan.branch_name is None:
                    update['branch_name'] = branch.name
                if loan.branch_code is None:
                    update['branch_code'] = branch.code
                if loan.region_id is None:
                    update['region_id'] = branch.region_id
            region = region_by_id.get(update.get('region_id', loan.region_id))
            if region is not None and loan.region_name is None:
                update['region_name'] = region.name
            self._loans.append(loan.model_copy(update=update) if update else loan)

    def fetch_loans(self, query) -> List[LoanRow]:
        if query.tenant_id != self.tenant_id:
            return []

        loans = []
        for loan in self._loans:
            if loan.status != self.disbursed_status:
                continue
            if query.branch_id and loan.branch_id != query.branch_id:
                continue
            if query.region_id and query.region_id not in (loan.region_id, loan.region_name):
                continue
            if query.created_from or query.created_to:
                created = period_generator.business_date(loan.created_at)
                if created is None:
                    continue
                if query.created_from and created < query.created_from:
                    continue
                if query.created_to and created > query.created_to:
                    continue
            loans.append(loan)
        return loans

    def fetch_payments(self, query, loan_ids: List[str]) -> List[PaymentRow]:
        if query.tenant_id != self.tenant_id:
            return []
        wanted = set(loan_ids)
        return [p for p in self._payments if p.loan_id in wanted]

    def fetch_installments(self, query, loan_ids: List[str]) -> List[InstallmentRow]:
        if query.tenant_id != self.tenant_id:
            return []
        wanted = set(loan_ids)
        return [i for i in self._installments if i.loan_id in wanted]

    def fetch_branches(self, tenant_id: str) -> List[BranchRow]:
        return list(self._branches) if tenant_id == self.tenant_id else []

    def fetch_regions(self, tenant_id: str) -> List[RegionRow]:
        return list(self._regions) if tenant_id == self.tenant_id else []


sql_ledger = SQLLedgerProjection()

# -*- coding: utf-8 -*-
"""
LendPulse - Database models
SQLAlchemy tables read by the SQL ledger projection

The analytics engine only reads these tables; loans, payments and
installments are written by the operational side of the platform.
"""

from datetime import datetime
from lendpulse import db


class Region(db.Model):
    """Operating region of a tenant"""
    __tablename__ = 'regions'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    branches = db.relationship('Branch', backref='region', lazy=True)

    def __repr__(self):
        return f'<Region {self.name}>'


class Branch(db.Model):
    """Branch office"""
    __tablename__ = 'branches'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    region_id = db.Column(db.Integer, db.ForeignKey('regions.id'))
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32))

    def __repr__(self):
        return f'<Branch {self.code} {self.name}>'


class Customer(db.Model):
    """Borrower"""
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey('branches.id'))
    first_name = db.Column(db.String(120))
    last_name = db.Column(db.String(120))
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(20))
    county = db.Column(db.String(120))
    marital_status = db.Column(db.String(40))
    business_type = db.Column(db.String(120))
    daily_sales = db.Column(db.Numeric(14, 2))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Customer {self.id}>'


class Loan(db.Model):
    """Loan account"""
    __tablename__ = 'loans'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'))
    branch_id = db.Column(db.Integer, db.ForeignKey('branches.id'), index=True)
    region_id = db.Column(db.Integer, db.ForeignKey('regions.id'), index=True)

    product_name = db.Column(db.String(120))
    product_type = db.Column(db.String(120))

    scored_amount = db.Column(db.Numeric(14, 2))  # principal
    total_payable = db.Column(db.Numeric(14, 2))
    weekly_payment = db.Column(db.Numeric(14, 2))

    status = db.Column(db.String(32), nullable=False, index=True)  # pending, approved, disbursed, rejected
    repayment_state = db.Column(db.String(32))  # current, overdue, defaulted, cleared

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    disbursed_at = db.Column(db.DateTime)

    payments = db.relationship('LoanPayment', backref='loan', lazy=True)
    installments = db.relationship('LoanInstallment', backref='loan', lazy=True)

    def __repr__(self):
        return f'<Loan {self.id} {self.status}>'


class LoanPayment(db.Model):
    """Repayment received against a loan"""
    __tablename__ = 'loan_payments'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    loan_id = db.Column(db.Integer, db.ForeignKey('loans.id'), nullable=False, index=True)
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False)
    paid_at = db.Column(db.DateTime, index=True)
    payer_type = db.Column(db.String(32))  # customer, guarantor, next-of-kin, third-party, other
    mpesa_receipt = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<LoanPayment {self.loan_id} {self.paid_amount}>'


class LoanInstallment(db.Model):
    """Scheduled installment of a loan"""
    __tablename__ = 'loan_installments'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    loan_id = db.Column(db.Integer, db.ForeignKey('loans.id'), nullable=False, index=True)
    installment_number = db.Column(db.Integer)
    due_date = db.Column(db.Date, index=True)
    due_amount = db.Column(db.Numeric(14, 2))
    principal_paid = db.Column(db.Numeric(14, 2))
    interest_paid = db.Column(db.Numeric(14, 2))
    paid_amount = db.Column(db.Numeric(14, 2))
    status = db.Column(db.String(16), default='current')  # current, partial, overdue, paid
    days_overdue = db.Column(db.Integer)

    def __repr__(self):
        return f'<LoanInstallment {self.loan_id}#{self.installment_number} {self.status}>'

# -*- coding: utf-8 -*-
"""
LendPulse - Data models
"""

# Re-export everything from both model modules
from lendpulse.models.database import (
    Region, Branch, Customer, Loan, LoanPayment, LoanInstallment
)
from lendpulse.models.ledger import (
    LoanRow, PaymentRow, InstallmentRow, BranchRow, RegionRow, LedgerSnapshot
)

__all__ = [
    'Region', 'Branch', 'Customer', 'Loan', 'LoanPayment', 'LoanInstallment',
    'LoanRow', 'PaymentRow', 'InstallmentRow', 'BranchRow', 'RegionRow', 'LedgerSnapshot',
]

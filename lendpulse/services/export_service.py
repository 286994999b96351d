# -*- coding: utf-8 -*-
"""
LendPulse - Export service
Flat CSV and Excel projections of any view's records

Records are projected losslessly: one header row of field names, one row
per record. Nested values (dicts, lists) are rejected.
"""

import io
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config import APP_CONFIG

logger = logging.getLogger(__name__)


class ExportFormat:
    CSV = 'csv'
    EXCEL = 'xlsx'

    ALL = (CSV, EXCEL)


_TREND_COLUMNS = ('period', 'amount', 'count')
_DELINQUENCY_COLUMNS = (
    'loanId', 'branch', 'overdueAmount', 'totalAmount', 'paidAmount',
    'turnoverPercentage', 'daysOverdue', 'weeklyPayment', 'repaymentState', 'isNpl',
)

# Header row per view, used when a view has no records
VIEW_COLUMNS = {
    'dimension': (
        'name', 'disbursed', 'payable', 'collected', 'outstanding', 'collectionRate',
        'nplAmount', 'nplRate', 'nplCount', 'arrearsAmount', 'loanCount', 'avgLoanSize',
        'customerCount', 'avgDailySales',
    ),
    'trends': _TREND_COLUMNS,
    'collections': _TREND_COLUMNS,
    'payer-types': ('name', 'amount', 'count', 'amountShare', 'countShare'),
    'npl': _DELINQUENCY_COLUMNS,
    'overdue': _DELINQUENCY_COLUMNS,
    'loyalty': ('name', 'customers', 'loanCount', 'amount', 'customerShare', 'amountShare'),
}


class ExportService:
    """Converts record lists to CSV text or styled Excel workbooks"""

    def to_table(self, records: List[Dict], columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Records as a DataFrame, columns in first-seen key order.

        Raises:
            ValueError: a record holds a nested value
        """
        if columns is None:
            columns = []
            for record in records:
                for key in record:
                    if key not in columns:
                        columns.append(key)

        for index, record in enumerate(records):
            for key, value in record.items():
                if isinstance(value, (dict, list, tuple, set)):
                    raise ValueError(f"Record {index} field '{key}' is nested; exports must be flat")

        return pd.DataFrame(records, columns=list(columns), dtype=object)

    def to_csv(self, records: List[Dict], columns: Optional[Sequence[str]] = None) -> str:
        """Header row plus one comma-separated row per record; '' when there is nothing to describe"""
        if not records and not columns:
            return ''
        table = self.to_table(records, columns)
        return table.to_csv(index=False, lineterminator='\n')

    def to_excel(self, records: List[Dict], sheet_name: str = 'Export',
                 columns: Optional[Sequence[str]] = None, title: Optional[str] = None) -> bytes:
        """Workbook bytes with a styled header row"""
        table = self.to_table(records, columns)

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = sheet_name[:31]

        header_fill = PatternFill(start_color='1e3a5f', end_color='1e3a5f', fill_type='solid')
        white_font = Font(name='Arial', size=10, bold=True, color='FFFFFF')
        normal_font = Font(name='Arial', size=10)
        border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        number_format = '#,##0'
        decimal_format = '#,##0.0'

        row = 1
        if title:
            ws.cell(row=row, column=1, value=title).font = Font(name='Arial', size=12, bold=True)
            row += 2

        for col, name in enumerate(table.columns, start=1):
            cell = ws.cell(row=row, column=col, value=name)
            cell.fill = header_fill
            cell.font = white_font
            cell.border = border
            cell.alignment = Alignment(horizontal='center')
            ws.column_dimensions[get_column_letter(col)].width = max(12, len(str(name)) + 4)

        for values in table.itertuples(index=False):
            row += 1
            for col, value in enumerate(values, start=1):
                if value is not None and pd.isna(value):
                    value = None
                cell = ws.cell(row=row, column=col, value=value)
                cell.font = normal_font
                cell.border = border
                if isinstance(value, bool):
                    continue
                if isinstance(value, int):
                    cell.number_format = number_format
                elif isinstance(value, float):
                    cell.number_format = decimal_format

        output = io.BytesIO()
        wb.save(output)
        output.seek(0)

        logger.info(f"Excel export: {len(table)} rows, {len(table.columns)} columns")
        return output.getvalue()

    @staticmethod
    def filename(view: str, fmt: str, today: date) -> str:
        safe_view = view.replace(':', '_').replace('/', '_')
        prefix = APP_CONFIG['APP_NAME'].lower()
        return f"{prefix}_{safe_view}_{today.strftime('%Y%m%d')}.{fmt}"


# Singleton instance
export_service = ExportService()

# -*- coding: utf-8 -*-
"""
LendPulse - Tests for CSV and Excel exports
"""

import pytest
import sys
import os
from datetime import date
from io import BytesIO

import openpyxl

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lendpulse.services.export_service import VIEW_COLUMNS, ExportService


ROWS = [
    {'name': 'Thika (THK)', 'disbursed': 30000, 'collectionRate': 25.0},
    {'name': 'Mombasa (MSA)', 'disbursed': 5000, 'collectionRate': 100.0},
]


class TestCSV:
    """CSV projection"""

    def setup_method(self):
        self.service = ExportService()

    def test_header_and_rows(self):
        lines = self.service.to_csv(ROWS).splitlines()
        assert lines[0] == 'name,disbursed,collectionRate'
        assert lines[1] == 'Thika (THK),30000,25.0'
        assert len(lines) == 3

    def test_missing_fields_are_blank(self):
        text = self.service.to_csv([{'a': 1, 'b': 2}, {'a': 3}])
        assert text.splitlines() == ['a,b', '1,2', '3,']

    def test_empty_without_columns(self):
        assert self.service.to_csv([]) == ''

    def test_empty_with_columns_is_header_only(self):
        text = self.service.to_csv([], VIEW_COLUMNS['payer-types'])
        assert text == 'name,amount,count,amountShare,countShare\n'

    def test_nested_values_are_rejected(self):
        with pytest.raises(ValueError):
            self.service.to_csv([{'name': 'x', 'breakdown': {'a': 1}}])

    def test_filename(self):
        assert self.service.filename('dimension:branch', 'csv', date(2026, 4, 15)) == \
            'lendpulse_dimension_branch_20260415.csv'


class TestExcel:
    """Excel workbook"""

    def setup_method(self):
        self.service = ExportService()

    def test_workbook_contents(self):
        content = self.service.to_excel(ROWS, sheet_name='Branches')
        wb = openpyxl.load_workbook(BytesIO(content))
        ws = wb['Branches']

        assert [c.value for c in ws[1]] == ['name', 'disbursed', 'collectionRate']
        assert ws.cell(row=2, column=1).value == 'Thika (THK)'
        assert ws.cell(row=2, column=2).value == 30000
        assert ws.cell(row=2, column=2).number_format == '#,##0'
        assert ws.cell(row=3, column=3).value == 100.0
        assert ws.cell(row=1, column=1).font.bold

    def test_title_row(self):
        content = self.service.to_excel(ROWS, title='Branch performance')
        ws = openpyxl.load_workbook(BytesIO(content)).active
        assert ws.cell(row=1, column=1).value == 'Branch performance'
        assert ws.cell(row=3, column=1).value == 'name'

    def test_empty_records_keep_header(self):
        content = self.service.to_excel([], columns=VIEW_COLUMNS['loyalty'])
        ws = openpyxl.load_workbook(BytesIO(content)).active
        assert ws.max_row == 1
        assert ws.cell(row=1, column=2).value == 'customers'

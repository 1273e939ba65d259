"""
CSV statement parser.
"""

import csv
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel

from ledgermatch.config import settings
from ledgermatch.models.transaction import TransactionType
from ledgermatch.parsers.base import StatementParser
from ledgermatch.schemas.imports import ParsedTransaction

logger = logging.getLogger(__name__)


class ColumnMapping(BaseModel):
    """Zero-based column indexes of a card export."""
    date_col: int
    description_col: int
    amount_col: Optional[int] = None
    debit_col: Optional[int] = None
    credit_col: Optional[int] = None
    currency_col: Optional[int] = None
    original_amount_col: Optional[int] = None
    original_currency_col: Optional[int] = None


CURRENCY_SYMBOLS = {"₪": "ILS", "$": "USD", "€": "EUR", "£": "GBP"}


class CSVStatementParser(StatementParser):
    """Parser for CSV card statement exports"""

    def __init__(self, mapping: ColumnMapping, date_format: str = "%d/%m/%Y"):
        self.mapping = mapping
        self.date_format = date_format

    def can_parse(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == '.csv'

    def get_preview(
        self,
        file_path: Path,
        rows: int = 5
    ) -> Tuple[List[str], List[List[str]]]:
        """Return headers and preview rows"""
        with open(file_path, 'r', encoding='utf-8-sig') as f:
            reader = csv.reader(f, self._sniff(f))
            headers = next(reader, [])

            preview_rows = []
            for i, row in enumerate(reader):
                if i >= rows:
                    break
                preview_rows.append(row)

            return headers, preview_rows

    def parse(self, file_path: Path) -> Iterator[ParsedTransaction]:
        with open(file_path, 'r', encoding='utf-8-sig') as f:
            reader = csv.reader(f, self._sniff(f))
            next(reader, None)

            for line_no, row in enumerate(reader, start=2):
                if not row or all(cell.strip() == '' for cell in row):
                    continue

                try:
                    txn = self._parse_row(row)
                except (ValueError, IndexError, InvalidOperation) as e:
                    logger.warning("Skipping %s line %d: %s", file_path.name, line_no, e)
                    continue
                if txn:
                    yield txn

    def _sniff(self, f):
        sample = f.read(8192)
        f.seek(0)
        try:
            return csv.Sniffer().sniff(sample)
        except csv.Error:
            return csv.excel

    def _parse_row(self, row: List[str]) -> Optional[ParsedTransaction]:
        """Parse a single row; credits become negative income rows"""
        mapping = self.mapping

        txn_date = datetime.strptime(row[mapping.date_col].strip(), self.date_format).date()

        amount = self._parse_amount(row)
        if amount is None:
            return None

        currency = settings.local_currency
        if mapping.currency_col is not None:
            currency = self._clean_currency(row[mapping.currency_col]) or currency

        original_amount = None
        original_currency = None
        if mapping.original_amount_col is not None and mapping.original_currency_col is not None:
            original_amount = self._clean_amount(row[mapping.original_amount_col])
            original_currency = self._clean_currency(row[mapping.original_currency_col])
            if original_amount is None or not original_currency:
                original_amount, original_currency = None, None

        return ParsedTransaction(
            date=txn_date,
            merchant_raw=row[mapping.description_col].strip(),
            amount=amount,
            currency=currency,
            type=TransactionType.income if amount < 0 else TransactionType.expense,
            original_amount=original_amount,
            original_currency=original_currency,
        )

    def _parse_amount(self, row: List[str]) -> Optional[Decimal]:
        """Charges are positive; debit/credit exports are folded into one signed amount"""
        mapping = self.mapping

        if mapping.debit_col is not None and mapping.credit_col is not None:
            debit = self._clean_amount(row[mapping.debit_col])
            credit = self._clean_amount(row[mapping.credit_col])

            if debit and debit > 0:
                return debit
            elif credit and credit > 0:
                return -credit
            return None

        if mapping.amount_col is None:
            raise ValueError("Column mapping needs amount_col or debit_col and credit_col")
        return self._clean_amount(row[mapping.amount_col])

    def _clean_amount(self, amount_str: str) -> Optional[Decimal]:
        """Clean and parse amount string"""
        if not amount_str or not amount_str.strip():
            return None

        amount_str = amount_str.strip()

        if amount_str.startswith('(') and amount_str.endswith(')'):
            amount_str = '-' + amount_str[1:-1]

        amount_str = re.sub(r'[₪$€£,\s]', '', amount_str)

        try:
            return Decimal(amount_str)
        except InvalidOperation:
            return None

    def _clean_currency(self, value: str) -> Optional[str]:
        value = (value or "").strip()
        if not value:
            return None
        if value in CURRENCY_SYMBOLS:
            return CURRENCY_SYMBOLS[value]
        if value in ('ש"ח', 'ש״ח'):
            return "ILS"
        return value.upper()[:3]

"""
Statement parsers package.
"""

from ledgermatch.parsers.base import StatementParser
from ledgermatch.parsers.csv_parser import CSVStatementParser, ColumnMapping

__all__ = ['StatementParser', 'CSVStatementParser', 'ColumnMapping']

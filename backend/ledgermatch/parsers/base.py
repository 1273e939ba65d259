"""
Base parser class for statement files.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from ledgermatch.schemas.imports import ParsedTransaction


class StatementParser(ABC):
    """Turns one statement file into ordered transaction rows."""

    @abstractmethod
    def can_parse(self, file_path: Path) -> bool:
        """Check if this parser can handle the file"""
        pass

    @abstractmethod
    def parse(self, file_path: Path) -> Iterator[ParsedTransaction]:
        """
        Yield rows in file order.
        Unparseable rows are skipped, never raised.
        """
        pass

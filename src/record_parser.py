"""Record Parser - Turns a detailed billing CSV into line-item dicts, one row at a time."""

import csv
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from billing_errors import MalformedRow

logger = logging.getLogger(__name__)

# Primary key column of the "detailed line items with resources and tags" report
DEFAULT_RECORD_KEY = "RecordId"


class RecordParser:
    """
    Lazy, single-pass iterator over the line items of a CSV file.

    Header names are used verbatim as attribute names and every value stays a
    string. Empty cells are left out of the item instead of being stored as "".
    """

    def __init__(self, csv_path: Union[str, Path], primary_key: str = DEFAULT_RECORD_KEY) -> None:
        self.csv_path = Path(csv_path)
        self.primary_key = primary_key
        self.header: Optional[List[str]] = None
        self.rows_read = 0
        self._started = False

    def __iter__(self) -> Iterator[Dict[str, str]]:
        if self._started:
            raise RuntimeError(f"{self.csv_path} has already been parsed")
        self._started = True
        return self._records()

    def _read_header(self, reader) -> List[str]:
        header = next(reader, None)
        if not header:
            raise MalformedRow(0, "missing header row")
        if "" in header:
            raise MalformedRow(0, "empty column name in header")
        if len(set(header)) != len(header):
            raise MalformedRow(0, "duplicate column names in header")
        if self.primary_key not in header:
            raise MalformedRow(0, f"header has no '{self.primary_key}' column")
        return header

    def _records(self) -> Iterator[Dict[str, str]]:
        with open(self.csv_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.reader(f)
            try:
                header = self._read_header(reader)
                self.header = header
                row_index = 0
                for row in reader:
                    if not row:
                        continue
                    row_index += 1
                    if len(row) != len(header):
                        raise MalformedRow(
                            row_index, f"expected {len(header)} columns, got {len(row)}"
                        )
                    item = {name: value for name, value in zip(header, row) if value != ""}
                    if self.primary_key not in item:
                        raise MalformedRow(row_index, f"empty '{self.primary_key}'")
                    self.rows_read = row_index
                    yield item
            except csv.Error as e:
                raise MalformedRow(self.rows_read + 1, str(e)) from e
            except UnicodeDecodeError as e:
                raise MalformedRow(self.rows_read + 1, f"not valid UTF-8: {e.reason}") from e

        logger.info(f"Parsed {self.rows_read} line items from {self.csv_path}")


def parse_records(csv_path: Union[str, Path], primary_key: str = DEFAULT_RECORD_KEY) -> Iterator[Dict[str, str]]:
    """Shorthand for ``iter(RecordParser(csv_path, primary_key))``."""
    return iter(RecordParser(csv_path, primary_key))

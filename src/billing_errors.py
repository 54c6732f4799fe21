"""Billing Errors - Exception types raised while importing billing reports."""

from typing import Any, Dict, List, Optional


class BillingImportError(Exception):
    """Base class for every failure raised by the importer itself."""


class AmbiguousReport(BillingImportError):
    """More than one S3 object matches the report name prefix."""

    def __init__(self, prefix: str, count: int) -> None:
        super().__init__(f"Found too many objects matching {prefix} ({count})")
        self.prefix = prefix
        self.count = count


class MissingReport(BillingImportError):
    """No S3 object matches the report name prefix."""

    def __init__(self, prefix: str) -> None:
        super().__init__(f"No S3 object found matching {prefix}")
        self.prefix = prefix


class CorruptMetadata(BillingImportError):
    """A billing-reports row exists but has no fingerprint attribute."""

    def __init__(self, report_name: str, field: str) -> None:
        super().__init__(f"No '{field}' field present for the entry {report_name}")
        self.report_name = report_name
        self.field = field


class UnexpectedArchiveShape(BillingImportError):
    """The report archive does not hold exactly one safe member."""


class MalformedRow(BillingImportError):
    """A CSV row cannot be turned into a line item.

    Row 0 is the header; data rows are numbered from 1.
    """

    def __init__(self, row_index: int, reason: str) -> None:
        super().__init__(f"Malformed row {row_index}: {reason}")
        self.row_index = row_index
        self.reason = reason


class WriteTimeout(BillingImportError):
    """Unprocessed items remained after every batch write attempt."""

    def __init__(self, table: str, items: List[Dict[str, Any]], attempts: int) -> None:
        super().__init__(
            f"{len(items)} items still unprocessed in {table} after {attempts} attempts"
        )
        self.table = table
        self.items = items
        self.attempts = attempts


class ImportCancelled(BillingImportError):
    """The caller (or a failing sibling worker) asked the import to stop."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "Import cancelled")


class InvalidReportDate(BillingImportError):
    """The requested billing month is not in YYYY-MM form."""

"""Report Checker - Decides whether a billing report needs to be (re)imported.

The decision compares the S3 ETag of the report object with the ETag recorded
in the ``billing-reports`` table by the last successful import.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from billing_errors import AmbiguousReport, CorruptMetadata, MissingReport
from stores import REPORT_MD5_FIELD, REPORT_NAME_FIELD, REPORT_TABLE, BlobReader, KVStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    needs_ingest: bool
    current_fingerprint: str
    stored_fingerprint: str


def strip_etag(etag: str) -> str:
    """S3 returns ETags wrapped in double quotes; compare the bare token."""
    return etag.strip('"')


class ReportChecker:
    """Compare the stored and current fingerprints of one report."""

    def __init__(self, blob_reader: BlobReader, kv_store: KVStore, bucket: str, report_name: str) -> None:
        self.blob_reader = blob_reader
        self.kv_store = kv_store
        self.bucket = bucket
        self.report_name = report_name
        self._result: Optional[CheckResult] = None

    def check(self) -> CheckResult:
        """
        Look up both fingerprints.

        Returns:
            CheckResult with needs_ingest set when the fingerprints differ

        Raises:
            CorruptMetadata: the stored row has no md5 attribute
            MissingReport: no object matches the report name
            AmbiguousReport: several objects match the report name
        """
        stored = self._stored_fingerprint()
        current = self._current_fingerprint()
        self._result = CheckResult(
            needs_ingest=current != stored,
            current_fingerprint=current,
            stored_fingerprint=stored,
        )
        logger.debug(f"{self.report_name}: stored={stored!r} current={current!r}")
        return self._result

    def already_present(self) -> Tuple[bool, str]:
        """Return (fingerprints matched, current fingerprint) from the last check()."""
        if self._result is None:
            raise RuntimeError("already_present() called before check()")
        return not self._result.needs_ingest, self._result.current_fingerprint

    def _stored_fingerprint(self) -> str:
        row = self.kv_store.get_item(REPORT_TABLE, {REPORT_NAME_FIELD: self.report_name})
        if not row:
            return ""
        if REPORT_MD5_FIELD not in row:
            raise CorruptMetadata(self.report_name, REPORT_MD5_FIELD)
        return row[REPORT_MD5_FIELD]

    def _current_fingerprint(self) -> str:
        entries = self.blob_reader.list_objects(self.bucket, self.report_name)
        if not entries:
            raise MissingReport(self.report_name)
        if len(entries) > 1:
            raise AmbiguousReport(self.report_name, len(entries))
        return strip_etag(entries[0].fingerprint)

"""Billing Manager - Imports one month of AWS detailed billing into DynamoDB.

A run checks the report ETag against the last imported one, and only when they
differ downloads, unzips and loads the report before recording the new ETag.
The ETag is recorded last, so a run that fails part-way is simply repeated by
the next import of the same month.
"""

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from aws_session import AwsConfig
from batch_loader import DEFAULT_WORKERS, BatchLoader
from billing_errors import ImportCancelled, InvalidReportDate
from dynamo_store import DynamoStore
from record_injector import RecordInjector
from record_parser import DEFAULT_RECORD_KEY
from report_checker import ReportChecker
from report_downloader import ReportDownloader
from report_unzipper import unzip_report
from retry_backoff import BackoffPolicy
from s3_reader import S3Reader
from stores import MAX_BATCH_SIZE, BlobReader, KVStore

logger = logging.getLogger(__name__)

REPORT_NAME_PATTERN = "-aws-billing-detailed-line-items-with-resources-and-tags-"
REPORT_EXTENSION = ".csv.zip"

DEFAULT_DOWNLOAD_DIR = "/tmp/billing-reports-download/"
DEFAULT_UNZIP_DIR = "/tmp/billing-reports-unzip/"

_DATE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class ImportState(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up_to_date"
    FETCHING = "fetching"
    UNZIPPING = "unzipping"
    LOADING = "loading"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportSettings:
    download_dir: str = DEFAULT_DOWNLOAD_DIR
    unzip_dir: str = DEFAULT_UNZIP_DIR
    workers: int = DEFAULT_WORKERS
    record_key: str = DEFAULT_RECORD_KEY
    batch_size: int = MAX_BATCH_SIZE
    backoff: BackoffPolicy = BackoffPolicy()


@dataclass(frozen=True)
class ReportDescriptor:
    report_name: str
    date: str
    bucket: str
    account_id: str


@dataclass(frozen=True)
class ImportResult:
    report_name: str
    fingerprint: str
    imported: bool
    records_written: int
    state: ImportState


def report_name(account_id: str, date: str) -> str:
    """Name of the detailed billing report object for an account and YYYY-MM month."""
    return account_id + REPORT_NAME_PATTERN + date + REPORT_EXTENSION


def validate_date(date: str) -> str:
    if not _DATE_RE.match(date):
        raise InvalidReportDate(f"Invalid billing month {date!r}, expected YYYY-MM")
    return date


class BillingManager:
    """Coordinate the check, fetch, unzip, load and commit stages of an import."""

    def __init__(
        self,
        blob_reader: BlobReader,
        kv_store: KVStore,
        settings: Optional[ImportSettings] = None,
    ) -> None:
        self.blob_reader = blob_reader
        self.kv_store = kv_store
        self.settings = settings or ImportSettings()

    @classmethod
    def from_config(
        cls,
        s3_config: AwsConfig,
        dynamo_config: AwsConfig,
        settings: Optional[ImportSettings] = None,
    ) -> "BillingManager":
        """Build a manager backed by boto3 clients for the two (possibly distinct) accounts."""
        return cls(S3Reader.from_config(s3_config), DynamoStore.from_config(dynamo_config), settings)

    def describe(self, date: str, bucket: str) -> ReportDescriptor:
        validate_date(date)
        account_id = self.blob_reader.account_id()
        return ReportDescriptor(
            report_name=report_name(account_id, date),
            date=date,
            bucket=bucket,
            account_id=account_id,
        )

    def import_report(
        self,
        date: str,
        bucket: str,
        cancel_event: Optional[threading.Event] = None,
        on_stage: Optional[Callable[[ImportState], None]] = None,
        on_progress: Optional[Callable[[ImportState, int], None]] = None,
    ) -> ImportResult:
        """
        Import the detailed billing report of ``date`` (YYYY-MM) from ``bucket``.

        Args:
            date: Billing month
            bucket: S3 bucket holding the reports
            cancel_event: Stops the download and the load when set
            on_stage: Called on every state transition
            on_progress: Called with bytes downloaded (FETCHING) and items
                written (LOADING)

        Returns:
            ImportResult; ``imported`` is False when the report was already up to date

        Raises:
            The error of the first failing stage, unchanged
        """
        state = ImportState.IDLE

        def enter(new_state: ImportState) -> None:
            nonlocal state
            state = new_state
            logger.debug(f"Import state: {new_state.value}")
            if on_stage:
                on_stage(new_state)

        def progress(stage: ImportState) -> Optional[Callable[[int], None]]:
            if on_progress is None:
                return None
            return lambda n: on_progress(stage, n)

        settings = self.settings
        try:
            enter(ImportState.CHECKING)
            report = self.describe(date, bucket)
            checker = ReportChecker(self.blob_reader, self.kv_store, bucket, report.report_name)
            check = checker.check()
            if not check.needs_ingest:
                logger.info(f"File {report.report_name} doesn't need import.")
                enter(ImportState.UP_TO_DATE)
                return ImportResult(report.report_name, check.current_fingerprint, False, 0, state)
            logger.info(f"File {report.report_name} needs import.")

            enter(ImportState.FETCHING)
            downloader = ReportDownloader(self.blob_reader, bucket, report.report_name)
            archive_path = downloader.download(
                Path(settings.download_dir), cancel_event, progress(ImportState.FETCHING)
            )

            enter(ImportState.UNZIPPING)
            csv_path = unzip_report(archive_path, Path(settings.unzip_dir))

            enter(ImportState.LOADING)
            injector = RecordInjector(self.kv_store, settings.batch_size, settings.backoff)
            loader = BatchLoader(injector, settings.workers, settings.record_key)
            written = loader.process_file(
                report.report_name, csv_path, cancel_event, progress(ImportState.LOADING)
            )

            if cancel_event is not None and cancel_event.is_set():
                raise ImportCancelled(f"Import of {report.report_name} cancelled before commit")

            enter(ImportState.COMMITTING)
            _, fingerprint = checker.already_present()
            injector.create_report(report.report_name, fingerprint)

            enter(ImportState.DONE)
            logger.info(f"Imported {written} line items from {report.report_name}")
            return ImportResult(report.report_name, fingerprint, True, written, state)

        except Exception as e:
            logger.error(f"Import of {date} from {bucket} failed while {state.value}: {e}")
            enter(ImportState.FAILED)
            raise

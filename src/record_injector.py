"""Record Injector - Batched writes of line items and report entries into DynamoDB."""

import logging
import threading
from typing import Any, Dict, List, Optional

from billing_errors import WriteTimeout
from retry_backoff import BackoffPolicy, run_with_backoff
from stores import (
    MAX_BATCH_SIZE,
    RECORD_TABLE,
    REPORT_MD5_FIELD,
    REPORT_NAME_FIELD,
    REPORT_TABLE,
    KVStore,
)

logger = logging.getLogger(__name__)


class RecordInjector:
    """
    Write batches into the record and report tables.

    Holds no per-call state, so a single instance is shared by all loader
    workers.
    """

    def __init__(
        self,
        kv_store: KVStore,
        batch_size: int = MAX_BATCH_SIZE,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
        self.kv_store = kv_store
        self.batch_size = batch_size
        self.backoff = backoff or BackoffPolicy()

    def _write(
        self,
        table: str,
        items: List[Dict[str, Any]],
        cancel_event: Optional[threading.Event],
    ) -> None:
        def submit(pending: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            unprocessed = self.kv_store.batch_write_item(table, pending)
            if unprocessed:
                logger.debug(f"{len(unprocessed)}/{len(pending)} items unprocessed by {table}")
            return unprocessed

        residual = run_with_backoff(submit, list(items), self.backoff, cancel_event)
        if residual:
            logger.error(f"Giving up on {len(residual)} items for {table}")
            raise WriteTimeout(table, residual, self.backoff.attempts)

    def write_batch(self, items: List[Dict[str, Any]], cancel_event: Optional[threading.Event] = None) -> None:
        """
        Write one batch of line items, retrying whatever DynamoDB leaves unprocessed.

        Args:
            items: At most ``batch_size`` line items with distinct primary keys
            cancel_event: Interrupts the backoff sleep between retries

        Raises:
            WriteTimeout: items were still unprocessed after the last attempt
        """
        if len(items) > self.batch_size:
            raise ValueError(f"Batch of {len(items)} items exceeds the limit of {self.batch_size}")
        if not items:
            return
        self._write(RECORD_TABLE, items, cancel_event)

    def create_report(self, name: str, fingerprint: str) -> None:
        """Upsert the billing-reports entry recording ``fingerprint`` as imported."""
        logger.info(f"Recording {name} with fingerprint {fingerprint}")
        self._write(REPORT_TABLE, [{REPORT_NAME_FIELD: name, REPORT_MD5_FIELD: fingerprint}], None)

"""Batch Loader - Feeds parsed line items to a bounded pool of writer threads."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from billing_errors import ImportCancelled
from record_injector import RecordInjector
from record_parser import DEFAULT_RECORD_KEY, RecordParser

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 2


class _LoadState:
    """Bookkeeping shared between the producer and the worker callbacks."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.stop = threading.Event()
        self.error: Optional[BaseException] = None
        self.written = 0

    def fail(self, error: BaseException) -> None:
        with self.lock:
            if self.error is None:
                self.error = error
        self.stop.set()


class BatchLoader:
    """Load one CSV file into the record table through ``workers`` threads."""

    def __init__(
        self,
        injector: RecordInjector,
        workers: int = DEFAULT_WORKERS,
        primary_key: str = DEFAULT_RECORD_KEY,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be a positive integer, got {workers}")
        self.injector = injector
        self.workers = workers
        self.primary_key = primary_key

    def process_file(
        self,
        report_name: str,
        csv_path: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        on_batch: Optional[Callable[[int], None]] = None,
    ) -> int:
        """
        Parse ``csv_path`` and write every line item in batches.

        At most ``workers`` batches are written concurrently and as many again
        wait for a free worker; beyond that the parser blocks. The first
        failing batch stops the load and its error is raised once the
        in-flight batches have returned.

        Args:
            report_name: Report being loaded (used for logging)
            csv_path: Extracted CSV file
            cancel_event: Caller-side cancellation
            on_batch: Called with the size of every batch once it is written

        Returns:
            Number of line items written
        """
        state = _LoadState()
        slots = threading.BoundedSemaphore(self.workers * 2)
        futures: List[Future] = []

        def write(batch: List[Dict[str, str]]) -> int:
            if state.stop.is_set():
                raise ImportCancelled(f"Load of {report_name} stopped")
            self.injector.write_batch(batch, cancel_event=state.stop)
            return len(batch)

        def done(future: Future) -> None:
            try:
                if future.cancelled():
                    return
                error = future.exception()
                if error is not None:
                    state.fail(error)
                    return
                with state.lock:
                    state.written += future.result()
            finally:
                slots.release()
            if on_batch:
                on_batch(future.result())

        def cancelled() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                state.fail(ImportCancelled(f"Load of {report_name} cancelled"))
            return state.stop.is_set()

        def dispatch(executor: ThreadPoolExecutor, batch: List[Dict[str, str]]) -> bool:
            while not slots.acquire(timeout=0.1):
                if cancelled():
                    return False
            if cancelled():
                slots.release()
                return False
            future = executor.submit(write, batch)
            futures.append(future)
            future.add_done_callback(done)
            return True

        logger.info(f"Loading {report_name} from {csv_path} with {self.workers} workers")
        parser = RecordParser(csv_path, self.primary_key)
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="billing-loader") as executor:
            try:
                pending: Dict[str, Dict[str, str]] = {}
                for item in parser:
                    # Keys must be unique within one BatchWriteItem request
                    pending[item[self.primary_key]] = item
                    if len(pending) >= self.injector.batch_size:
                        if not dispatch(executor, list(pending.values())):
                            break
                        pending = {}
                else:
                    if pending:
                        dispatch(executor, list(pending.values()))
                # A cancel arriving now must still reach batches sleeping in backoff
                outstanding = set(futures)
                while outstanding:
                    _, outstanding = wait(outstanding, timeout=0.1)
                    cancelled()
            except BaseException as e:
                state.fail(e)
            finally:
                if state.stop.is_set():
                    for future in futures:
                        future.cancel()

        if state.error is not None:
            logger.error(f"Load of {report_name} failed after {state.written} items: {state.error}")
            raise state.error

        logger.info(f"Loaded {state.written} line items for {report_name}")
        return state.written

"""Pytest fixtures and configuration for test suite."""

import io
import os
import sys
import threading
import zipfile
from typing import Any, Callable, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from retry_backoff import BackoffPolicy
from stores import RECORD_TABLE, REPORT_TABLE, BlobEntry

ACCOUNT_ID = "111"
BUCKET = "b"


class FakeBody(io.BytesIO):
    """In-memory S3 body that remembers read sizes and whether it was closed."""

    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.read_sizes: List[int] = []

    def read(self, size: int = -1) -> bytes:
        self.read_sizes.append(size)
        return super().read(size)


class FakeBlobReader:
    """In-memory S3: ``objects`` maps key to (payload, quoted ETag)."""

    def __init__(self, account_id: str = ACCOUNT_ID) -> None:
        self._account_id = account_id
        self.objects: Dict[str, tuple] = {}
        self.list_calls: List[tuple] = []
        self.get_calls: List[tuple] = []
        self.bodies: List[FakeBody] = []

    def put(self, key: str, payload: bytes, etag: str) -> None:
        self.objects[key] = (payload, f'"{etag}"')

    def account_id(self) -> str:
        return self._account_id

    def list_objects(self, bucket: str, prefix: str) -> List[BlobEntry]:
        self.list_calls.append((bucket, prefix))
        return [
            BlobEntry(key=key, fingerprint=etag, size=len(payload))
            for key, (payload, etag) in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    def get_object(self, bucket: str, key: str) -> FakeBody:
        self.get_calls.append((bucket, key))
        body = FakeBody(self.objects[key][0])
        self.bodies.append(body)
        return body


class FakeKVStore:
    """
    In-memory DynamoDB holding ``billing-reports`` and ``billing-records``.

    ``responder(table, items, call_number)`` may return the unprocessed subset
    or raise; by default every item is written.
    """

    def __init__(self, record_key: str = "RecordId") -> None:
        self.keys = {REPORT_TABLE: "name", RECORD_TABLE: record_key}
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {REPORT_TABLE: {}, RECORD_TABLE: {}}
        self.calls: List[tuple] = []
        self.responder: Optional[Callable[[str, List[Dict[str, Any]], int], List[Dict[str, Any]]]] = None
        self._lock = threading.Lock()

    def get_item(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.tables[table].get(key[self.keys[table]])
        return dict(row) if row is not None else None

    def batch_write_item(self, table: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append((table, [dict(item) for item in items]))
            call_number = len([c for c in self.calls if c[0] == table])
        unprocessed: List[Dict[str, Any]] = []
        if self.responder is not None:
            unprocessed = self.responder(table, items, call_number)
        skipped = [id(item) for item in unprocessed]
        with self._lock:
            for item in items:
                if id(item) in skipped:
                    continue
                self.tables[table][item[self.keys[table]]] = dict(item)
        return unprocessed

    def calls_for(self, table: str) -> List[List[Dict[str, Any]]]:
        return [items for name, items in self.calls if name == table]


@pytest.fixture
def blob_reader():
    return FakeBlobReader()


@pytest.fixture
def kv_store():
    return FakeKVStore()


@pytest.fixture
def fast_backoff():
    """Backoff policy that never sleeps."""
    return BackoffPolicy(attempts=5, base_delay=0.0, factor=2.0, max_delay=0.0)


def make_csv(header: List[str], rows: List[List[str]]) -> bytes:
    lines = [",".join(header)] + [",".join(row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_zip(members: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, payload in members.items():
            archive.writestr(name, payload)
    return buffer.getvalue()


def billing_rows(count: int, prefix: str = "r", start: int = 1) -> List[List[str]]:
    return [[f"{prefix}{i}", f"{float(i)}"] for i in range(start, start + count)]


@pytest.fixture
def report_zip():
    """Build a report archive holding ``billing.csv`` with a RecordId,Cost header."""

    def build(rows: List[List[str]], header: Optional[List[str]] = None, member: str = "billing.csv") -> bytes:
        return make_zip({member: make_csv(header or ["RecordId", "Cost"], rows)})

    return build


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a temporary file and return its path."""

    def write(text: str, name: str = "report.csv", encoding: str = "utf-8"):
        path = tmp_path / name
        path.write_bytes(text.encode(encoding))
        return path

    return write

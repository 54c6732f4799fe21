"""Store interfaces - The capabilities the importer needs from S3 and DynamoDB.

The importer only talks to these protocols, so tests can swap in in-memory
fakes while production uses the boto3 adapters in ``s3_reader`` and
``dynamo_store``.
"""

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional, Protocol

# DynamoDB BatchWriteItem accepts at most 25 put requests per call
MAX_BATCH_SIZE = 25

REPORT_TABLE = "billing-reports"
REPORT_NAME_FIELD = "name"
REPORT_MD5_FIELD = "md5"

RECORD_TABLE = "billing-records"


@dataclass(frozen=True)
class BlobEntry:
    """One object returned by a prefix listing."""

    key: str
    fingerprint: str
    size: int = 0


class BlobReader(Protocol):
    def list_objects(self, bucket: str, prefix: str) -> List[BlobEntry]:
        ...

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        ...

    def account_id(self) -> str:
        ...


class KVStore(Protocol):
    def get_item(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def batch_write_item(self, table: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Write ``items`` and return the subset the store left unprocessed."""
        ...

"""DynamoDB Store - boto3 implementation of the key-value store interface."""

import logging
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from aws_session import CLIENT_CONFIG, AwsConfig, create_session
from stores import MAX_BATCH_SIZE

logger = logging.getLogger(__name__)


class DynamoStore:
    """Read and batch-write plain Python dicts against DynamoDB tables."""

    def __init__(self, session: boto3.Session) -> None:
        self.client = session.client("dynamodb", config=CLIENT_CONFIG)
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @classmethod
    def from_config(cls, config: AwsConfig) -> "DynamoStore":
        return cls(create_session(config))

    def _serialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {name: self._serializer.serialize(value) for name, value in item.items()}

    def _deserialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {name: self._deserializer.deserialize(value) for name, value in item.items()}

    def get_item(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Fetch a single row.

        Args:
            table: Table name
            key: Primary key attributes as plain values

        Returns:
            The row as a plain dict, or None when it does not exist
        """
        try:
            response = self.client.get_item(TableName=table, Key=self._serialize(key))
        except ClientError as e:
            logger.error(f"Error reading {key} from {table}: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._deserialize(item)

    def batch_write_item(self, table: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Put up to 25 items in a single BatchWriteItem call.

        Returns:
            Items DynamoDB reported as unprocessed (empty when all were written)
        """
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(
                f"BatchWriteItem accepts at most {MAX_BATCH_SIZE} items, got {len(items)}"
            )
        if not items:
            return []

        requests = [{"PutRequest": {"Item": self._serialize(item)}} for item in items]
        try:
            response = self.client.batch_write_item(RequestItems={table: requests})
        except ClientError as e:
            logger.error(f"Batch write of {len(items)} items to {table} failed: {e}")
            raise

        unprocessed = response.get("UnprocessedItems", {}).get(table, [])
        return [self._deserialize(request["PutRequest"]["Item"]) for request in unprocessed]

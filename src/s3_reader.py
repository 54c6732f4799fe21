"""S3 Billing Reader - Lists and streams AWS billing reports from S3."""

import logging
from typing import BinaryIO, List, Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from aws_session import CLIENT_CONFIG, AwsConfig, create_session
from stores import BlobEntry

logger = logging.getLogger(__name__)


class S3Reader:
    """Read billing report objects from S3 and resolve the owning account id."""

    def __init__(self, session: boto3.Session) -> None:
        """
        Initialize the S3 reader.

        Args:
            session: boto3 session holding the S3 account credentials
        """
        try:
            self.s3_client = session.client("s3", config=CLIENT_CONFIG)
            self.sts_client = session.client("sts", config=CLIENT_CONFIG)
        except NoCredentialsError:
            logger.error("AWS credentials not found. Please configure credentials.")
            raise
        self._account_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: AwsConfig) -> "S3Reader":
        return cls(create_session(config))

    def account_id(self) -> str:
        """Return the AWS account id of the configured credentials (cached)."""
        if self._account_id is None:
            try:
                identity = self.sts_client.get_caller_identity()
            except ClientError as e:
                logger.error(f"Error resolving caller identity: {e}")
                raise
            self._account_id = identity["Account"]
            logger.debug(f"Resolved account id {self._account_id}")
        return self._account_id

    def list_objects(self, bucket: str, prefix: str) -> List[BlobEntry]:
        """
        List every object under a prefix.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix to match

        Returns:
            One BlobEntry per object, ETag left exactly as S3 returned it
        """
        try:
            logger.info(f"Listing objects in s3://{bucket}/{prefix}")

            paginator = self.s3_client.get_paginator("list_objects_v2")
            pages = paginator.paginate(Bucket=bucket, Prefix=prefix)

            entries = []
            for page in pages:
                if "Contents" not in page:
                    continue

                for obj in page["Contents"]:
                    entries.append(
                        BlobEntry(
                            key=obj["Key"],
                            fingerprint=obj.get("ETag", ""),
                            size=obj.get("Size", 0),
                        )
                    )

            logger.info(f"Found {len(entries)} objects")
            return entries

        except ClientError as e:
            logger.error(f"Error listing S3 objects: {e}")
            raise

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        """
        Open an object for streaming.

        The returned body must be closed by the caller.
        """
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.error(f"Failed to open s3://{bucket}/{key}: {e}")
            raise
        return response["Body"]

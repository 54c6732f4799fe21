"""AWS session helpers shared by the S3 and DynamoDB adapters."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import NoCredentialsError

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

# Per-request retries are left to botocore; the importer only retries
# unprocessed batch items itself.
CLIENT_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


@dataclass(frozen=True)
class AwsConfig:
    """Credentials and region for one AWS account.

    Empty keys mean "use the default boto3 credential chain".
    """

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = DEFAULT_REGION
    profile: Optional[str] = None

    def __repr__(self) -> str:
        # Never print secrets in logs or tracebacks
        masked = "***" if self.secret_key else None
        return (
            f"AwsConfig(access_key={self.access_key!r}, secret_key={masked!r}, "
            f"region={self.region!r}, profile={self.profile!r})"
        )


def create_session(config: AwsConfig) -> boto3.Session:
    """
    Build a boto3 session from an AwsConfig.

    Args:
        config: Credentials and region to use

    Returns:
        A boto3 Session
    """
    session_params: Dict[str, Any] = {"region_name": config.region}
    if config.profile:
        session_params["profile_name"] = config.profile
    if config.access_key and config.secret_key:
        session_params["aws_access_key_id"] = config.access_key
        session_params["aws_secret_access_key"] = config.secret_key

    try:
        return boto3.Session(**session_params)
    except NoCredentialsError:
        logger.error("AWS credentials not found. Please configure credentials.")
        raise
    except Exception as e:
        logger.error(f"Error initializing AWS session: {e}")
        raise

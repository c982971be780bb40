"""Tier 1: direct upload to an S3 bucket with local credentials."""

from __future__ import annotations

from typing import Any, Callable

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import UploadConfig
from ..logging import get_logger
from .base import DeliveryError, DeliveryRequest

ClientFactory = Callable[[UploadConfig], Any]

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def public_url(bucket: str, region: str, key: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def default_client_factory(config: UploadConfig) -> Any:
    """Build an S3 client with explicit credentials and bounded timeouts."""
    boto_config = BotoConfig(
        region_name=config.region,
        connect_timeout=config.direct_timeout,
        read_timeout=config.direct_timeout,
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        region_name=config.region,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        config=boto_config,
    )


class S3Delivery:
    """Places report bytes at a content-addressed key in the configured bucket."""

    name = "direct"

    def __init__(self, config: UploadConfig, *, client_factory: ClientFactory | None = None) -> None:
        self.config = config
        self._client_factory = client_factory or default_client_factory
        self._client: Any = None
        self.logger = get_logger("upload.s3")

    def deliver(self, request: DeliveryRequest) -> str:
        bucket = self.config.bucket
        if not bucket:
            raise DeliveryError("no bucket configured for direct upload")
        url = public_url(bucket, self.config.region, request.key)

        try:
            client = self._get_client()
            if self._exists(client, bucket, request.key):
                self.logger.info("Report already stored at %s", url)
                return url
            self.logger.debug("Uploading %d bytes to s3://%s/%s", len(request.data), bucket, request.key)
            client.put_object(
                Bucket=bucket,
                Key=request.key,
                Body=request.data,
                ContentType=request.content_type,
                ACL="public-read",
                Metadata={"content-id": request.content_id},
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "unknown")
            raise DeliveryError(f"S3 rejected the upload ({code}): {exc}") from exc
        except BotoCoreError as exc:
            raise DeliveryError(f"S3 upload failed: {exc}") from exc

        return url

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self.config)
        return self._client

    @staticmethod
    def _exists(client: Any, bucket: str, key: str) -> bool:
        try:
            client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return False
            raise
        return True


__all__ = ["S3Delivery", "default_client_factory", "public_url"]

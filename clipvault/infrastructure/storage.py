"""Cloudflare R2 object store, accessed through boto3's S3 client."""

import logging
from typing import Any, Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from clipvault.config.models import StorageConfig
from clipvault.domain.errors import StorageError
from clipvault.domain.repositories import ObjectStore


class R2Storage(ObjectStore):
    def __init__(self, config: StorageConfig, client: Optional[Any] = None):
        self.bucket = config.bucket
        self.default_ttl = config.sign_ttl_seconds
        self.logger = logging.getLogger(__name__)

        if client is not None:
            self.client = client
        else:
            if not all([config.endpoint_url, config.bucket, config.access_key_id, config.secret_access_key]):
                raise StorageError(
                    "R2 storage is not configured (need R2_ENDPOINT, R2_BUCKET_NAME, "
                    "R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY)"
                )
            self.client = boto3.client(
                "s3",
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
            )
        self.logger.info(f"R2 storage initialized for bucket: {self.bucket}")

    def store(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            self.logger.error(f"STORE_FAILED: {key} ({len(data)} bytes): {exc}")
            raise StorageError(f"Failed to store {key}: {exc}") from exc
        self.logger.info(f"STORED: {key} ({len(data)} bytes, {content_type})")

    def sign(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        ttl = ttl_seconds or self.default_ttl
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to remove {key}: {exc}") from exc
        self.logger.info(f"REMOVED: {key}")

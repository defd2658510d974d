"""S3-backed object storage (boto3)."""

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import settings
from storage.base import ObjectNotFoundError, ObjectStorage, StorageError

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = ("NoSuchKey", "404", "NotFound")


class S3ObjectStorage(ObjectStorage):

    def __init__(
        self,
        bucket: str = settings.S3_BUCKET,
        region: str = settings.AWS_REGION,
        public_base_url: Optional[str] = settings.S3_PUBLIC_BASE_URL,
        client=None,
    ):
        self._bucket = bucket
        self._region = region
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )

    def get_object(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in MISSING_KEY_CODES:
                raise ObjectNotFoundError(f"s3://{self._bucket}/{key} does not exist") from e
            raise StorageError(f"Failed to read s3://{self._bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to read s3://{self._bucket}/{key}: {e}") from e

    def put_object(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload s3://{self._bucket}/{key}: {e}") from e

        url = self.url_for(key)
        logger.debug(f"Uploaded {len(data)} bytes to {url}")
        return url

    def url_for(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

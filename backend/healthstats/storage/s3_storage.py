"""
Amazon S3 Storage Implementation.

boto3 is synchronous, so every call is pushed onto a worker thread with
asyncio.to_thread. Object bodies are read chunk by chunk so a multi-hundred
megabyte export never sits in memory whole.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StorageError
from .interface import StorageInterface

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3Storage(StorageInterface):
    """S3 bucket backend for source documents, snapshots and job records."""

    def __init__(self, bucket: str, region: str = "us-east-1", client: Any = None):
        """
        Args:
            bucket: Bucket name
            region: AWS region used when building the default client
            client: Pre-built boto3 S3 client (tests inject a stub)
        """
        if not bucket:
            raise StorageError("S3 bucket name is not configured")
        self.bucket = bucket
        self.region = region
        self.s3_client = client or boto3.client("s3", region_name=region)
        logger.info("S3 storage using bucket %s (region: %s)", bucket, region)

    async def save(
        self,
        path: str,
        content: bytes | str,
        content_type: Optional[str] = None
    ) -> None:
        body = content.encode("utf-8") if isinstance(content, str) else content
        params = {"Bucket": self.bucket, "Key": path, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        try:
            await asyncio.to_thread(self.s3_client.put_object, **params)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error writing s3://{self.bucket}/{path}: {e}", key=path) from e

    async def load(self, path: str) -> Optional[bytes]:
        try:
            response = await asyncio.to_thread(self.s3_client.get_object, Bucket=self.bucket, Key=path)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if _is_missing(e):
                return None
            raise StorageError(f"Error reading s3://{self.bucket}/{path}: {e}", key=path) from e
        except BotoCoreError as e:
            raise StorageError(f"Error reading s3://{self.bucket}/{path}: {e}", key=path) from e

    async def exists(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self.s3_client.head_object, Bucket=self.bucket, Key=path)
            return True
        except ClientError as e:
            if _is_missing(e):
                return False
            raise StorageError(f"Error checking s3://{self.bucket}/{path}: {e}", key=path) from e

    async def delete(self, path: str) -> bool:
        if not await self.exists(path):
            return False
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=path)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error deleting s3://{self.bucket}/{path}: {e}", key=path) from e
        return True

    async def stream(self, path: str, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        try:
            response = await asyncio.to_thread(self.s3_client.get_object, Bucket=self.bucket, Key=path)
        except ClientError as e:
            if _is_missing(e):
                raise StorageError(f"Object not found: s3://{self.bucket}/{path}", key=path) from e
            raise StorageError(f"Error opening s3://{self.bucket}/{path}: {e}", key=path) from e
        except BotoCoreError as e:
            raise StorageError(f"Error opening s3://{self.bucket}/{path}: {e}", key=path) from e

        size = response.get("ContentLength") or 0
        logger.info("Streaming s3://%s/%s (%.2f MB)", self.bucket, path, size / (1024 * 1024))

        body = response["Body"]
        chunks = body.iter_chunks(chunk_size)
        try:
            while True:
                chunk = await asyncio.to_thread(next, chunks, None)
                if chunk is None:
                    break
                yield chunk
        except (ClientError, BotoCoreError, OSError) as e:
            raise StorageError(f"Error reading s3://{self.bucket}/{path}: {e}", key=path) from e
        finally:
            body.close()

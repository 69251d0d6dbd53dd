"""
Object storage for rendered documents and draft audio (S3 compatible, e.g. Cloudflare R2)
"""

import asyncio
import time
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from clinicscribe.config import settings
from clinicscribe.core.exceptions import UpstreamServiceError
from clinicscribe.core.logging import get_logger, audit_logger

logger = get_logger(__name__)


def draft_audio_key(user_id: str, extension: str, now_ms: int = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"drafts/{user_id}/{now_ms}.{extension}"


def session_document_key(user_id: str, session_id: str) -> str:
    return f"documents/{user_id}/{session_id}.html"


class ObjectStorage:
    """Uploads objects and returns their public URL."""

    def __init__(self, client=None, bucket: str = None, public_base_url: str = None):
        self.bucket = bucket or settings.storage_bucket
        self.public_base_url = (public_base_url or settings.storage_public_base_url).rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint_url or None,
            region_name=settings.storage_region,
            aws_access_key_id=settings.storage_access_key_id or None,
            aws_secret_access_key=settings.storage_secret_access_key or None,
        )

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    async def upload(self, content: bytes, key: str, content_type: str) -> str:
        start = time.time()
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("storage_upload_failed", key=key, error=str(e), exc_info=True)
            audit_logger.log_external_api_call(
                service="storage", operation="put_object", success=False,
                response_time_ms=int((time.time() - start) * 1000),
            )
            raise UpstreamServiceError("storage", "Failed to upload file to storage.") from e

        audit_logger.log_external_api_call(
            service="storage", operation="put_object", success=True,
            response_time_ms=int((time.time() - start) * 1000),
        )
        logger.info("storage_upload_complete", key=key, size_bytes=len(content))
        return self.public_url(key)

    async def check(self) -> bool:
        """Readiness check: the bucket is reachable with the configured credentials."""
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("storage_unreachable", error=str(e))
            return False

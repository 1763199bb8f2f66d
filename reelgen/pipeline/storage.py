"""
Object storage for pipeline artifacts.

All artifacts are stored under a category prefix:
  temp/{kind}-{request_id}.{ext}   intermediate outputs (this pipeline)
  reel/...                         curated reels (listing only)

Talks to any S3-compatible endpoint through boto3. The default endpoint is
the Google Cloud Storage XML interop API (HMAC keys), so public URLs take
the form https://storage.googleapis.com/{bucket}/{key}.
"""

import asyncio
import logging
from typing import Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from .errors import UpstreamError
from .models import Artifact, StorageCategory, StoredAsset

logger = logging.getLogger(__name__)

PUBLIC_READ_ACL = "public-read"


def _build_s3_client(settings: Settings):
    return boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url or None,
        aws_access_key_id=settings.storage_access_key_id or None,
        aws_secret_access_key=settings.storage_secret_access_key or None,
        config=BotoConfig(
            signature_version="s3v4",
            connect_timeout=settings.http_timeout,
            read_timeout=settings.download_timeout,
            retries={"max_attempts": 1 + settings.read_retries},
        ),
        region_name=settings.storage_region,
    )


class ArtifactStore:
    """
    Upload-and-publish store.

    upload() writes the object, its content type and a public-read ACL in a
    single PutObject, so there is no observable private intermediate state.
    Uploading the same name twice overwrites and returns the same URL.
    """

    def __init__(self, settings: Settings, s3_client=None):
        self.bucket = settings.bucket_name
        self.public_base_url = settings.storage_public_base_url.rstrip("/")
        self._settings = settings
        self._s3 = s3_client

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = _build_s3_client(self._settings)
        return self._s3

    # ── Naming ───────────────────────────────────────────────────────────

    @staticmethod
    def object_key(name: str, category: StorageCategory = StorageCategory.TEMP) -> str:
        return f"{StorageCategory(category).prefix}{name}"

    def public_url(self, name: str, category: StorageCategory = StorageCategory.TEMP) -> str:
        return self._url_for_key(self.object_key(name, category))

    def _url_for_key(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{key}"

    # ── Writes ───────────────────────────────────────────────────────────

    async def upload(
        self,
        name: str,
        mime_type: str,
        content: Union[bytes, str],
        category: StorageCategory = StorageCategory.TEMP,
    ) -> str:
        """Persist `content` publicly under `{category}/{name}` and return its URL."""
        if not self.bucket:
            raise UpstreamError("GCS_BUCKET_NAME is not configured", "storage")

        key = self.object_key(name, category)
        body = content.encode("utf-8") if isinstance(content, str) else content

        try:
            await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=mime_type,
                ACL=PUBLIC_READ_ACL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage upload failed for key={key}: {e}")
            raise UpstreamError(f"upload of {key} failed: {e}", "storage") from e

        public_url = self._url_for_key(key)
        logger.info(f"Uploaded {len(body)} bytes ({mime_type}) to {public_url}")
        return public_url

    async def upload_artifact(self, artifact: Artifact) -> StoredAsset:
        url = await self.upload(
            artifact.name, artifact.mime_type, artifact.content, artifact.category
        )
        return StoredAsset(name=artifact.name, url=url, size=artifact.size)

    # ── Reads ────────────────────────────────────────────────────────────

    async def list_urls(
        self,
        category: StorageCategory = StorageCategory.REEL,
        limit: Optional[int] = None,
    ) -> list[str]:
        """Public URLs of the objects under a category prefix, newest first."""
        if not self.bucket:
            raise UpstreamError("GCS_BUCKET_NAME is not configured", "storage")

        prefix = StorageCategory(category).prefix
        try:
            response = await asyncio.to_thread(
                self.s3.list_objects_v2, Bucket=self.bucket, Prefix=prefix
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage listing failed for prefix={prefix}: {e}")
            raise UpstreamError(f"listing {prefix} failed: {e}", "storage") from e

        objects = [
            obj for obj in response.get("Contents", [])
            if not obj["Key"].endswith("/")
        ]
        objects.sort(key=lambda obj: obj["LastModified"], reverse=True)
        if limit is not None:
            objects = objects[:limit]
        return [self._url_for_key(obj["Key"]) for obj in objects]

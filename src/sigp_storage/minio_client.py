import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from sigp_storage.config import get_settings
from sigp_storage.errors import ObjectNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


def get_minio_client() -> Minio:
    """Create a MinIO client."""
    settings = get_settings()
    return Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_use_ssl,
        region=settings.minio_region,
    )


def ensure_bucket_exists() -> None:
    """Create the files bucket if it doesn't exist."""
    settings = get_settings()
    client = get_minio_client()
    bucket = settings.minio_bucket
    if not client.bucket_exists(bucket):
        client.make_bucket(bucket)
        logger.info("Created MinIO bucket: %s", bucket)
    else:
        logger.info("MinIO bucket already exists: %s", bucket)


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    etag: str | None
    content_type: str | None


class MinioObjectStore:
    """Async facade over the blocking MinIO SDK.

    SDK calls run in a worker thread. ``S3Error`` with a missing-object code
    becomes :class:`ObjectNotFound`; any other S3 or transport failure becomes
    :class:`StoreUnavailable`.
    """

    def __init__(self, client: Minio, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    async def presign_put(self, key: str, ttl: timedelta) -> str:
        return await self._call(key, self._client.presigned_put_object, self.bucket, key, expires=ttl)

    async def presign_get(self, key: str, ttl: timedelta) -> str:
        return await self._call(key, self._client.presigned_get_object, self.bucket, key, expires=ttl)

    async def stat(self, key: str) -> ObjectInfo:
        stat = await self._call(key, self._client.stat_object, self.bucket, key)
        return ObjectInfo(
            key=key,
            size=stat.size,
            etag=stat.etag,
            content_type=stat.content_type,
        )

    async def delete(self, key: str) -> None:
        # S3 DELETE succeeds on missing keys, so stat first to report NotFound.
        await self.stat(key)
        await self._call(key, self._client.remove_object, self.bucket, key)

    async def ping(self) -> bool:
        return await self._call(None, self._client.bucket_exists, self.bucket)

    async def _call(self, key: str | None, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                raise ObjectNotFound(key or self.bucket) from e
            logger.error("MinIO request failed: %s %s", e.code, e.message)
            raise StoreUnavailable(f"Object store error: {e.code}") from e
        except (Urllib3HTTPError, OSError) as e:
            logger.error("MinIO unreachable: %s", e)
            raise StoreUnavailable("Object store unreachable") from e


def get_object_store() -> MinioObjectStore:
    settings = get_settings()
    return MinioObjectStore(get_minio_client(), settings.minio_bucket)

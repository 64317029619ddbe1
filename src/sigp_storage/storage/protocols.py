"""Collaborator interfaces for the upload coordinator and reconciler."""

import uuid
from datetime import datetime, timedelta
from typing import Protocol

from sigp_storage.minio_client import ObjectInfo
from sigp_storage.models import FileRecord
from sigp_storage.models.enums import IntentStatus
from sigp_storage.storage.intents import UploadIntent


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...


class ObjectStore(Protocol):
    bucket: str

    async def presign_put(self, key: str, ttl: timedelta) -> str: ...

    async def presign_get(self, key: str, ttl: timedelta) -> str: ...

    async def stat(self, key: str) -> ObjectInfo:
        """Raises ObjectNotFound if the key does not exist."""
        ...

    async def delete(self, key: str) -> None:
        """Raises ObjectNotFound if the key does not exist."""
        ...


class IntentLedger(Protocol):
    async def create(self, intent: UploadIntent) -> None: ...

    async def get(self, intent_id: str) -> UploadIntent | None: ...

    async def compare_and_set_status(
        self,
        intent_id: str,
        expected: IntentStatus,
        new: IntentStatus,
        fields: dict[str, str] | None = None,
    ) -> bool:
        """Atomically move an entry from ``expected`` to ``new``.

        ``fields`` are written in the same step. Returns False when the
        entry is missing or not in ``expected``.
        """
        ...

    async def settle(self, intent_id: str) -> None:
        """Mark a confirmed entry's FileRecord as durable."""
        ...

    async def delete(self, intent_id: str) -> None: ...

    async def list_expired(self, now: datetime, limit: int) -> list[UploadIntent]:
        """Unsettled entries (pending, expired, or confirmed without a
        settled record) whose expires_at < now."""
        ...

    async def acquire_sweep_lease(self, token: str, ttl: timedelta) -> bool: ...

    async def release_sweep_lease(self, token: str) -> None: ...


class FileRecordStore(Protocol):
    async def get_by_intent(self, intent_id: str) -> FileRecord | None: ...

    async def get(self, file_id: uuid.UUID) -> FileRecord | None: ...

    async def get_or_create(
        self,
        intent: UploadIntent,
        *,
        bucket: str,
        checksum: str | None,
        etag: str | None,
        size_bytes: int,
        confirmed_at: datetime,
    ) -> FileRecord:
        """Return the single record for ``intent``, inserting it if absent."""
        ...

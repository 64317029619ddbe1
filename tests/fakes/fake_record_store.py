"""In-memory FileRecord store with a unique intent_id, like the SQL table."""

import asyncio
import uuid
from datetime import datetime

from sigp_storage.models import FileRecord
from sigp_storage.storage.intents import UploadIntent


class InMemoryFileRecordStore:
    def __init__(self) -> None:
        self.records: dict[uuid.UUID, FileRecord] = {}

    def count_for_intent(self, intent_id: str) -> int:
        return sum(1 for r in self.records.values() if r.intent_id == intent_id)

    async def get_by_intent(self, intent_id: str) -> FileRecord | None:
        await asyncio.sleep(0)
        return self._by_intent(intent_id)

    async def get(self, file_id: uuid.UUID) -> FileRecord | None:
        await asyncio.sleep(0)
        return self.records.get(file_id)

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
        await asyncio.sleep(0)
        existing = self._by_intent(intent.intent_id)
        if existing is not None:
            return existing

        versions = [
            r.version for r in self.records.values()
            if r.owner_id == intent.owner_id and r.path == intent.target_path
        ]
        record = FileRecord(
            id=uuid.uuid4(),
            intent_id=intent.intent_id,
            owner_id=intent.owner_id,
            path=intent.target_path,
            bucket=bucket,
            object_key=intent.object_key,
            version=max(versions, default=0) + 1,
            checksum=checksum,
            etag=etag,
            size_bytes=size_bytes,
            content_type=intent.content_type,
            confirmed_at=confirmed_at,
        )
        self.records[record.id] = record
        return record

    def _by_intent(self, intent_id: str) -> FileRecord | None:
        for record in self.records.values():
            if record.intent_id == intent_id:
                return record
        return None

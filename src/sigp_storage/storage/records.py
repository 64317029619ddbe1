"""PostgreSQL store for confirmed file records."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sigp_storage.audit import log_audit
from sigp_storage.errors import StoreUnavailable
from sigp_storage.models import FileRecord
from sigp_storage.storage.intents import UploadIntent

logger = logging.getLogger(__name__)


class SqlFileRecordStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_version_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._max_version_attempts = max_version_attempts

    async def get_by_intent(self, intent_id: str) -> FileRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FileRecord).where(FileRecord.intent_id == intent_id)
            )
            return result.scalar_one_or_none()

    async def get(self, file_id: uuid.UUID) -> FileRecord | None:
        async with self._session_factory() as session:
            return await session.get(FileRecord, file_id)

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
        """Insert the record for ``intent`` unless one already exists.

        ``intent_id`` is unique, so concurrent callers race on the insert and
        all of them read back the one row that landed. A clash on
        ``(owner_id, path, version)`` with a different intent retries with
        the next version number.
        """
        for attempt in range(1, self._max_version_attempts + 1):
            async with self._session_factory() as session:
                try:
                    existing = await self._by_intent(session, intent.intent_id)
                    if existing is not None:
                        return existing

                    latest = await session.scalar(
                        select(func.max(FileRecord.version)).where(
                            FileRecord.owner_id == intent.owner_id,
                            FileRecord.path == intent.target_path,
                        )
                    )
                    version = (latest or 0) + 1
                    stmt = (
                        pg_insert(FileRecord)
                        .values(
                            intent_id=intent.intent_id,
                            owner_id=intent.owner_id,
                            path=intent.target_path,
                            bucket=bucket,
                            object_key=intent.object_key,
                            version=version,
                            checksum=checksum,
                            etag=etag,
                            size_bytes=size_bytes,
                            content_type=intent.content_type,
                            confirmed_at=confirmed_at,
                        )
                        .on_conflict_do_nothing(index_elements=[FileRecord.intent_id])
                        .returning(FileRecord.id)
                    )
                    inserted_id = (await session.execute(stmt)).scalar_one_or_none()

                    if inserted_id is None:
                        # Another confirmer inserted first.
                        await session.rollback()
                        existing = await self._by_intent(session, intent.intent_id)
                        if existing is not None:
                            return existing
                        continue

                    await log_audit(
                        session,
                        user_id=intent.owner_id,
                        action="confirm_upload",
                        target_type="file_record",
                        target_id=inserted_id,
                        detail={
                            "intent_id": intent.intent_id,
                            "path": intent.target_path,
                            "version": version,
                            "size_bytes": size_bytes,
                        },
                    )
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.info(
                        "Version %s of %s taken, retrying (attempt %d)",
                        version, intent.target_path, attempt,
                    )
                    continue
                except OperationalError as e:
                    logger.error("File record insert failed: %s", e)
                    raise StoreUnavailable("File metadata store unavailable") from e

                record = await session.get(FileRecord, inserted_id)
                logger.info(
                    "Created file record %s for intent %s (%s v%d)",
                    inserted_id, intent.intent_id, intent.target_path, version,
                )
                return record

        raise StoreUnavailable(f"Could not allocate a version for {intent.target_path}")

    async def _by_intent(self, session: AsyncSession, intent_id: str) -> FileRecord | None:
        result = await session.execute(
            select(FileRecord).where(FileRecord.intent_id == intent_id)
        )
        return result.scalar_one_or_none()

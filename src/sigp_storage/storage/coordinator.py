"""Upload coordinator: request URL, direct upload, confirm.

The flow has three phases:

1. ``request_upload`` records a pending intent in the ledger and hands the
   client a presigned PUT URL scoped to that intent's object key.
2. The client uploads bytes straight to the object store.
3. ``confirm_upload`` checks the intent is still live, verifies the object
   really exists, flips the ledger entry pending -> confirmed with a
   compare-and-set and promotes the upload to a durable FileRecord. Only
   then is the ledger entry settled; until that point the entry stays in the
   expiry index so a confirm that dies half-way is finished by the reconciler.

Every confirmer, winner or loser of the compare-and-set, ends in the record
store's idempotent ``get_or_create``, so replays return the same record.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sigp_storage.errors import (
    IntentExpired,
    IntentNotFound,
    InvalidTarget,
    ObjectNotFound,
    ObjectNotUploaded,
    QuotaExceeded,
    StoreUnavailable,
    UploadMismatch,
)
from sigp_storage.minio_client import ObjectInfo
from sigp_storage.models import FileRecord
from sigp_storage.models.enums import IntentStatus, MismatchPolicy
from sigp_storage.storage.intents import (
    UploadIntent,
    build_object_key,
    new_intent_id,
    normalize_target_path,
)
from sigp_storage.storage.protocols import Clock, FileRecordStore, IntentLedger, ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class UploadPolicy:
    intent_ttl: timedelta = timedelta(seconds=900)
    download_ttl: timedelta = timedelta(seconds=3600)
    max_size_bytes: int = 200 * 1024 * 1024
    allowed_content_types: frozenset[str] = frozenset()
    mismatch_policy: MismatchPolicy = MismatchPolicy.reject
    key_prefix: str = "uploads"


@dataclass(frozen=True)
class UploadTicket:
    intent_id: str
    write_url: str
    expires_at: datetime
    object_key: str


class UploadCoordinator:
    def __init__(
        self,
        store: ObjectStore,
        ledger: IntentLedger,
        records: FileRecordStore,
        clock: Clock,
        policy: UploadPolicy | None = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._records = records
        self._clock = clock
        self._policy = policy or UploadPolicy()

    async def request_upload(
        self,
        owner_id: uuid.UUID,
        target_path: str,
        declared_size: int,
        content_type: str | None,
        content_hash: str | None = None,
    ) -> UploadTicket:
        target_path = normalize_target_path(target_path)
        if declared_size < 0:
            raise InvalidTarget("Declared size must not be negative")
        if declared_size > self._policy.max_size_bytes:
            raise QuotaExceeded(
                f"Declared size {declared_size} exceeds limit of {self._policy.max_size_bytes} bytes"
            )
        allowed = self._policy.allowed_content_types
        if allowed and content_type not in allowed:
            raise InvalidTarget(f"Content type '{content_type}' is not allowed")

        now = self._clock.now()
        intent_id = new_intent_id()
        intent = UploadIntent(
            intent_id=intent_id,
            owner_id=owner_id,
            target_path=target_path,
            object_key=build_object_key(self._policy.key_prefix, owner_id, intent_id, target_path),
            content_type=content_type,
            content_hash=content_hash,
            byte_size_limit=declared_size,
            created_at=now,
            expires_at=now + self._policy.intent_ttl,
        )
        await self._ledger.create(intent)

        try:
            write_url = await self._store.presign_put(intent.object_key, self._policy.intent_ttl)
        except Exception:
            await self._ledger.delete(intent_id)
            raise

        logger.info(
            "Issued upload intent %s for owner %s -> %s (%d bytes, expires %s)",
            intent_id, owner_id, target_path, declared_size, intent.expires_at.isoformat(),
        )
        return UploadTicket(
            intent_id=intent_id,
            write_url=write_url,
            expires_at=intent.expires_at,
            object_key=intent.object_key,
        )

    async def get_intent(self, intent_id: str, owner_id: uuid.UUID | None = None) -> UploadIntent:
        intent = await self._ledger.get(intent_id)
        if intent is None or not _owned_by(intent.owner_id, owner_id):
            raise IntentNotFound(f"Upload intent {intent_id} not found")
        return intent

    async def confirm_upload(
        self,
        intent_id: str,
        actual_checksum: str | None,
        actual_size: int,
        owner_id: uuid.UUID | None = None,
    ) -> FileRecord:
        """Promote a pending intent to a FileRecord.

        When ``owner_id`` is given, intents belonging to anyone else are
        reported as not found.
        """
        intent = await self._ledger.get(intent_id)
        if intent is None:
            return await self._replay(intent_id, owner_id)
        if not _owned_by(intent.owner_id, owner_id):
            raise IntentNotFound(f"Upload intent {intent_id} not found")
        if intent.status == IntentStatus.confirmed:
            existing = await self._records.get_by_intent(intent_id)
            if existing is not None:
                return existing
            # A previous confirmer won the compare-and-set but never wrote
            # the record.
            self._check_declared(intent, actual_checksum, actual_size)
            return await self.finish_promotion(intent)
        if intent.status == IntentStatus.expired or intent.is_expired(self._clock.now()):
            raise IntentExpired(f"Upload intent {intent_id} expired at {intent.expires_at.isoformat()}")

        self._check_declared(intent, actual_checksum, actual_size)
        info = await self._stat_upload(intent)
        if info.size != actual_size:
            self._mismatch(intent, f"stored object is {info.size} bytes, client reported {actual_size}")
            actual_size = info.size

        confirmed = {"confirmed_size": str(actual_size)}
        if actual_checksum is not None:
            confirmed["confirmed_checksum"] = actual_checksum
        if not await self._ledger.compare_and_set_status(
            intent_id, IntentStatus.pending, IntentStatus.confirmed, confirmed,
        ):
            current = await self._ledger.get(intent_id)
            if current is None:
                return await self._replay(intent_id, owner_id)
            if current.status != IntentStatus.confirmed:
                raise IntentExpired(f"Upload intent {intent_id} was reclaimed")
            logger.debug("Intent %s confirmed concurrently", intent_id)
            return await self.finish_promotion(current)

        return await self._promote(intent, actual_checksum, actual_size, info)

    async def finish_promotion(self, intent: UploadIntent) -> FileRecord:
        """Complete an intent the ledger already marks confirmed.

        Serves late confirmers and the reconciler when a confirm died between
        the compare-and-set and the record insert. The record carries the
        checksum and size the winning confirmer verified.
        """
        existing = await self._records.get_by_intent(intent.intent_id)
        if existing is not None:
            await self._settle(intent.intent_id)
            return existing
        info = await self._stat_upload(intent)
        size = intent.confirmed_size if intent.confirmed_size is not None else info.size
        return await self._promote(intent, intent.confirmed_checksum, size, info)

    async def get_download_url(self, file_id: uuid.UUID, owner_id: uuid.UUID) -> tuple[FileRecord, str, datetime]:
        record = await self._records.get(file_id)
        if record is None or not _owned_by(record.owner_id, owner_id):
            raise IntentNotFound(f"File {file_id} not found")
        ttl = self._policy.download_ttl
        url = await self._store.presign_get(record.object_key, ttl)
        return record, url, self._clock.now() + ttl

    async def _replay(self, intent_id: str, owner_id: uuid.UUID | None) -> FileRecord:
        record = await self._records.get_by_intent(intent_id)
        if record is None or not _owned_by(record.owner_id, owner_id):
            raise IntentNotFound(f"Upload intent {intent_id} not found")
        return record

    async def _promote(
        self,
        intent: UploadIntent,
        checksum: str | None,
        size: int,
        info: ObjectInfo,
    ) -> FileRecord:
        record = await self._records.get_or_create(
            intent,
            bucket=self._store.bucket,
            checksum=checksum,
            etag=info.etag,
            size_bytes=size,
            confirmed_at=self._clock.now(),
        )
        await self._settle(intent.intent_id)
        logger.info("Confirmed upload %s as file %s", intent.intent_id, record.id)
        return record

    async def _settle(self, intent_id: str) -> None:
        try:
            await self._ledger.settle(intent_id)
        except StoreUnavailable:
            # Record is durable; the entry stays indexed and the reconciler
            # settles it on a later sweep.
            logger.warning("Could not settle ledger entry %s", intent_id)

    async def _stat_upload(self, intent: UploadIntent) -> ObjectInfo:
        try:
            return await self._store.stat(intent.object_key)
        except ObjectNotFound:
            raise ObjectNotUploaded(
                f"No object uploaded for intent {intent.intent_id}"
            ) from None

    def _check_declared(self, intent: UploadIntent, checksum: str | None, size: int) -> None:
        if size > intent.byte_size_limit:
            self._mismatch(intent, f"size {size} exceeds declared {intent.byte_size_limit}")
        if intent.content_hash and (
            checksum is None or checksum.lower() != intent.content_hash.lower()
        ):
            self._mismatch(intent, "checksum does not match declared content hash")

    def _mismatch(self, intent: UploadIntent, reason: str) -> None:
        if self._policy.mismatch_policy == MismatchPolicy.reject:
            raise UploadMismatch(f"Upload {intent.intent_id}: {reason}")
        logger.warning("Accepting mismatched upload %s: %s", intent.intent_id, reason)


def _owned_by(actual: uuid.UUID, expected: uuid.UUID | None) -> bool:
    return expected is None or actual == expected

"""Orphan reconciler: reclaim upload intents that were never confirmed."""

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sigp_storage.errors import ObjectNotFound, ObjectNotUploaded, ReconcileEntryFailed
from sigp_storage.models.enums import IntentStatus
from sigp_storage.storage.coordinator import UploadCoordinator
from sigp_storage.storage.intents import UploadIntent
from sigp_storage.storage.protocols import Clock, IntentLedger, ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    reclaimed: int = 0
    promoted: int = 0
    skipped: int = 0
    failed: int = 0


class OrphanReconciler:
    """Periodic single-flight sweep over expired ledger entries.

    Pending and expired entries are reclaimed. Confirmed entries still in the
    expiry index belong to a confirm that died before its FileRecord was
    written; those are handed back to the coordinator to finish.

    Within a process an overlapping ``tick`` is skipped, not queued. Across
    processes a ledger lease keeps a second instance from sweeping at the
    same time.
    """

    def __init__(
        self,
        store: ObjectStore,
        ledger: IntentLedger,
        clock: Clock,
        coordinator: UploadCoordinator,
        interval: timedelta = timedelta(minutes=5),
        batch_size: int = 100,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock
        self._coordinator = coordinator
        self._interval = interval
        self._batch_size = batch_size
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def tick(self) -> SweepReport | None:
        """Run one sweep unless one is already in flight."""
        if self._running:
            logger.info("Previous reconciliation sweep still running, skipping tick")
            return None

        self._running = True
        try:
            token = secrets.token_hex(16)
            # Lease outlives one interval so a crashed holder frees it.
            lease_ttl = self._interval * 2
            if not await self._ledger.acquire_sweep_lease(token, lease_ttl):
                logger.info("Reconciliation lease held by another instance, skipping tick")
                return None
            try:
                return await self.sweep()
            finally:
                await self._ledger.release_sweep_lease(token)
        finally:
            self._running = False

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        now = self._clock.now()
        intents = await self._ledger.list_expired(now, self._batch_size)

        for intent in intents:
            report.scanned += 1
            try:
                if intent.status == IntentStatus.confirmed:
                    if await self._finish(intent):
                        report.promoted += 1
                    else:
                        report.reclaimed += 1
                elif await self._reclaim(intent):
                    report.reclaimed += 1
                else:
                    report.skipped += 1
            except ReconcileEntryFailed as e:
                report.failed += 1
                logger.warning("%s; will retry next sweep", e)

        if report.scanned:
            logger.info(
                "Reconciliation sweep: scanned=%d reclaimed=%d promoted=%d skipped=%d failed=%d",
                report.scanned, report.reclaimed, report.promoted, report.skipped, report.failed,
            )
        return report

    async def _finish(self, intent: UploadIntent) -> bool:
        """Complete a half-done confirm. False if its object is gone."""
        try:
            record = await self._coordinator.finish_promotion(intent)
        except ObjectNotUploaded:
            logger.warning(
                "Confirmed upload %s lost its object %s, dropping ledger entry",
                intent.intent_id, intent.object_key,
            )
            try:
                await self._ledger.delete(intent.intent_id)
            except Exception as e:
                raise ReconcileEntryFailed(intent.intent_id, f"ledger delete failed: {e}") from e
            return False
        except Exception as e:
            raise ReconcileEntryFailed(intent.intent_id, f"promotion failed: {e}") from e

        logger.info("Finished interrupted confirm %s as file %s", intent.intent_id, record.id)
        return True

    async def _reclaim(self, intent: UploadIntent) -> bool:
        if intent.status == IntentStatus.confirmed:
            return False
        if intent.status == IntentStatus.pending:
            # Losing this CAS means a confirm got there first.
            if not await self._ledger.compare_and_set_status(
                intent.intent_id, IntentStatus.pending, IntentStatus.expired,
            ):
                logger.debug("Intent %s no longer pending, leaving it", intent.intent_id)
                return False

        try:
            await self._store.delete(intent.object_key)
            logger.info("Deleted orphaned object %s", intent.object_key)
        except ObjectNotFound:
            pass
        except Exception as e:
            raise ReconcileEntryFailed(intent.intent_id, f"object delete failed: {e}") from e

        try:
            await self._ledger.delete(intent.intent_id)
        except Exception as e:
            raise ReconcileEntryFailed(intent.intent_id, f"ledger delete failed: {e}") from e

        logger.info("Reclaimed upload intent %s (%s)", intent.intent_id, intent.target_path)
        return True

    async def run_forever(self) -> None:
        """Sweep every interval until cancelled."""
        interval = self._interval.total_seconds()
        logger.info("Orphan reconciler started (interval %ss)", interval)
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Reconciliation tick failed")
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Orphan reconciler stopped")
            raise

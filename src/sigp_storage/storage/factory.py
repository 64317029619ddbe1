"""Wire the coordinator and reconciler from settings."""

from datetime import timedelta

from sigp_storage.config import Settings, get_settings
from sigp_storage.db import async_session_factory
from sigp_storage.minio_client import get_object_store
from sigp_storage.redis import get_async_redis
from sigp_storage.storage.clock import SystemClock
from sigp_storage.storage.coordinator import UploadCoordinator, UploadPolicy
from sigp_storage.storage.ledger import RedisIntentLedger
from sigp_storage.storage.reconciler import OrphanReconciler
from sigp_storage.storage.records import SqlFileRecordStore


def policy_from_settings(settings: Settings) -> UploadPolicy:
    return UploadPolicy(
        intent_ttl=timedelta(seconds=settings.upload_intent_ttl_seconds),
        download_ttl=timedelta(seconds=settings.upload_download_ttl_seconds),
        max_size_bytes=settings.max_file_size_mb * 1024 * 1024,
        allowed_content_types=frozenset(settings.allowed_content_types),
        mismatch_policy=settings.mismatch_policy,
        key_prefix=settings.upload_key_prefix,
    )


def create_ledger(redis=None, settings: Settings | None = None) -> RedisIntentLedger:
    settings = settings or get_settings()
    return RedisIntentLedger(
        redis if redis is not None else get_async_redis(),
        key_prefix=settings.ledger_key_prefix,
        grace=timedelta(seconds=settings.ledger_grace_seconds),
    )


def create_upload_coordinator(redis=None, settings: Settings | None = None) -> UploadCoordinator:
    settings = settings or get_settings()
    return UploadCoordinator(
        store=get_object_store(),
        ledger=create_ledger(redis, settings),
        records=SqlFileRecordStore(async_session_factory),
        clock=SystemClock(),
        policy=policy_from_settings(settings),
    )


def create_reconciler(
    redis=None,
    settings: Settings | None = None,
    coordinator: UploadCoordinator | None = None,
) -> OrphanReconciler:
    settings = settings or get_settings()
    return OrphanReconciler(
        store=get_object_store(),
        ledger=create_ledger(redis, settings),
        clock=SystemClock(),
        coordinator=coordinator or create_upload_coordinator(redis, settings),
        interval=timedelta(seconds=settings.reconcile_interval_seconds),
        batch_size=settings.reconcile_batch_size,
    )

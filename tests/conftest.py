"""Shared pytest fixtures for sigp-storage."""

import sys
import uuid
from datetime import timedelta
from pathlib import Path

import pytest

# Make src/ importable without an editable install
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from sigp_storage.storage.coordinator import UploadCoordinator, UploadPolicy  # noqa: E402
from sigp_storage.storage.reconciler import OrphanReconciler  # noqa: E402
from tests.fakes.fake_clock import FakeClock  # noqa: E402
from tests.fakes.fake_ledger import InMemoryLedger  # noqa: E402
from tests.fakes.fake_object_store import FakeObjectStore  # noqa: E402
from tests.fakes.fake_record_store import InMemoryFileRecordStore  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def records() -> InMemoryFileRecordStore:
    return InMemoryFileRecordStore()


@pytest.fixture
def policy() -> UploadPolicy:
    return UploadPolicy(
        intent_ttl=timedelta(seconds=900),
        max_size_bytes=10 * 1024 * 1024,
    )


@pytest.fixture
def coordinator(store, ledger, records, clock, policy) -> UploadCoordinator:
    return UploadCoordinator(store, ledger, records, clock, policy)


@pytest.fixture
def reconciler(store, ledger, clock, coordinator) -> OrphanReconciler:
    return OrphanReconciler(store, ledger, clock, coordinator, interval=timedelta(minutes=5), batch_size=50)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.UUID("00000000-0000-0000-0000-0000000000a1")

"""Tests for the orphan reconciliation sweep."""

import asyncio

import pytest

from sigp_storage.errors import StoreUnavailable
from sigp_storage.models.enums import IntentStatus


async def _request(coordinator, owner_id, path="docs/a.pdf", size=1024):
    return await coordinator.request_upload(owner_id, path, size, "application/pdf")


@pytest.mark.asyncio
async def test_confirmed_intent_untouched_by_sweep(coordinator, reconciler, store, ledger, records, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)
    store.put(ticket.object_key, b"x" * 1024)

    first = await coordinator.confirm_upload(ticket.intent_id, "abc", 1024)
    assert first.path == "docs/a.pdf"
    again = await coordinator.confirm_upload(ticket.intent_id, "abc", 1024)
    assert again.id == first.id

    clock.advance(seconds=901)
    report = await reconciler.tick()

    assert report.scanned == 0
    assert ledger.entries[ticket.intent_id].status == IntentStatus.confirmed
    assert ticket.object_key in store.objects
    assert records.count_for_intent(ticket.intent_id) == 1


@pytest.mark.asyncio
async def test_unconfirmed_intent_reclaimed_after_expiry(coordinator, reconciler, store, ledger, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)
    store.put(ticket.object_key, b"partial")

    clock.advance(seconds=901)
    report = await reconciler.tick()

    assert report.reclaimed == 1
    assert ticket.intent_id not in ledger.entries
    assert ticket.object_key not in store.objects
    assert store.deleted == [ticket.object_key]


@pytest.mark.asyncio
async def test_reclaim_tolerates_missing_object(coordinator, reconciler, ledger, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)

    clock.advance(seconds=901)
    report = await reconciler.sweep()

    assert report.reclaimed == 1
    assert report.failed == 0
    assert ticket.intent_id not in ledger.entries


@pytest.mark.asyncio
async def test_live_intents_not_reclaimed(coordinator, reconciler, ledger, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)

    clock.advance(seconds=600)
    report = await reconciler.sweep()

    assert report.scanned == 0
    assert ledger.entries[ticket.intent_id].status == IntentStatus.pending


@pytest.mark.asyncio
async def test_sweep_continues_past_failed_entry_and_retries(
    coordinator, reconciler, store, ledger, clock, owner_id, caplog: pytest.LogCaptureFixture,
) -> None:
    bad = await _request(coordinator, owner_id, path="bad.bin")
    good = await _request(coordinator, owner_id, path="good.bin")
    store.put(bad.object_key, b"x")
    store.put(good.object_key, b"y")
    store.failing_deletes.add(bad.object_key)

    clock.advance(seconds=901)
    with caplog.at_level("WARNING"):
        report = await reconciler.sweep()

    assert report.failed == 1
    assert report.reclaimed == 1
    assert good.intent_id not in ledger.entries
    assert ledger.entries[bad.intent_id].status == IntentStatus.expired
    assert "will retry next sweep" in caplog.text

    store.failing_deletes.clear()
    report = await reconciler.sweep()

    assert report.reclaimed == 1
    assert bad.intent_id not in ledger.entries
    assert bad.object_key not in store.objects


@pytest.mark.asyncio
async def test_ledger_delete_failure_is_isolated(coordinator, reconciler, ledger, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)
    ledger.failing_deletes.add(ticket.intent_id)

    clock.advance(seconds=901)
    report = await reconciler.sweep()

    assert report.failed == 1
    assert ledger.entries[ticket.intent_id].status == IntentStatus.expired


@pytest.mark.asyncio
async def test_overlapping_ticks_are_skipped(coordinator, reconciler, store, ledger, clock, owner_id) -> None:
    for i in range(5):
        await _request(coordinator, owner_id, path=f"f{i}.bin")
    clock.advance(seconds=901)

    first, second = await asyncio.gather(reconciler.tick(), reconciler.tick())

    assert first is not None
    assert second is None
    assert first.reclaimed == 5
    assert not reconciler.running
    assert ledger.lease_holder is None


@pytest.mark.asyncio
async def test_tick_skipped_while_lease_held_elsewhere(coordinator, reconciler, ledger, clock, owner_id) -> None:
    ticket = await _request(coordinator, owner_id)
    ledger.lease_holder = "other-instance"

    clock.advance(seconds=901)
    assert await reconciler.tick() is None
    assert ticket.intent_id in ledger.entries


@pytest.mark.asyncio
async def test_confirm_racing_sweep_keeps_single_outcome(
    coordinator, reconciler, store, ledger, records, clock, owner_id,
) -> None:
    ticket = await _request(coordinator, owner_id)
    store.put(ticket.object_key, b"x" * 1024)
    # Sweep sees the entry as expired, confirm already read it as live.
    intents = await ledger.list_expired(clock.now().replace(year=2100), 10)
    await coordinator.confirm_upload(ticket.intent_id, "abc", 1024)

    reclaimed = await reconciler._reclaim(intents[0])

    assert reclaimed is False
    assert ticket.object_key in store.objects
    assert records.count_for_intent(ticket.intent_id) == 1


@pytest.mark.asyncio
async def test_sweep_finishes_confirm_interrupted_by_record_store_outage(
    coordinator, reconciler, store, ledger, records, clock, owner_id, monkeypatch,
) -> None:
    ticket = await _request(coordinator, owner_id)
    store.put(ticket.object_key, b"x" * 1024)

    async def db_down(*args, **kwargs):
        raise StoreUnavailable("File metadata store unavailable")

    monkeypatch.setattr(records, "get_or_create", db_down)
    with pytest.raises(StoreUnavailable):
        await coordinator.confirm_upload(ticket.intent_id, "abc", 1024)
    monkeypatch.undo()

    clock.advance(days=1)
    report = await reconciler.tick()

    assert report.promoted == 1
    assert report.reclaimed == 0
    record = await records.get_by_intent(ticket.intent_id)
    assert record.checksum == "abc"
    assert record.size_bytes == 1024
    assert ticket.object_key in store.objects
    assert ticket.intent_id not in ledger.indexed

    assert (await reconciler.tick()).scanned == 0


@pytest.mark.asyncio
async def test_sweep_settles_record_whose_settle_failed(
    coordinator, reconciler, store, ledger, records, clock, owner_id,
) -> None:
    ticket = await _request(coordinator, owner_id)
    store.put(ticket.object_key, b"x" * 1024)
    ledger.failing_settles.add(ticket.intent_id)
    record = await coordinator.confirm_upload(ticket.intent_id, "abc", 1024)
    ledger.failing_settles.clear()

    clock.advance(seconds=901)
    report = await reconciler.sweep()

    assert report.promoted == 1
    assert records.count_for_intent(ticket.intent_id) == 1
    assert (await records.get_by_intent(ticket.intent_id)).id == record.id
    assert ticket.intent_id not in ledger.indexed


@pytest.mark.asyncio
async def test_confirmed_entry_without_object_is_dropped(
    coordinator, reconciler, ledger, records, clock, owner_id,
) -> None:
    ticket = await _request(coordinator, owner_id)
    await ledger.compare_and_set_status(ticket.intent_id, IntentStatus.pending, IntentStatus.confirmed)

    clock.advance(seconds=901)
    report = await reconciler.sweep()

    assert report.reclaimed == 1
    assert ticket.intent_id not in ledger.entries
    assert records.records == {}


@pytest.mark.asyncio
async def test_run_forever_survives_failing_tick(reconciler, ledger, monkeypatch) -> None:
    calls = 0

    async def boom(now, limit):
        nonlocal calls
        calls += 1
        raise RuntimeError("redis down")

    monkeypatch.setattr(ledger, "list_expired", boom)
    reconciler._interval = reconciler._interval * 0

    task = asyncio.create_task(reconciler.run_forever())
    while calls < 3:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert calls >= 3
    assert ledger.lease_holder is None

"""Tests for checkpoint, call log and run lock persistence."""
from datetime import date, datetime, timedelta, timezone

import pytest

from samharvest.errors import RunInProgress
from samharvest.store.models import CallContext, CallLogEntry, Checkpoint


async def _age_lock(state, hours: int = 3) -> None:
    stale = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
    async with state.transaction() as db:
        await db.execute("UPDATE run_lock SET acquired_at = ? WHERE id = 1", (stale,))


@pytest.mark.asyncio
async def test_checkpoint_empty_on_first_load(state):
    """Test that a fresh database has an empty checkpoint."""
    assert await state.load_checkpoint() == Checkpoint()


@pytest.mark.asyncio
async def test_checkpoint_round_trip(state):
    checkpoint = Checkpoint(
        last_incremental=date(2024, 6, 13),
        backfill_cursor=date(2024, 1, 1),
        backfill_complete=True,
    )
    await state.save_checkpoint(checkpoint)
    assert await state.load_checkpoint() == checkpoint


@pytest.mark.asyncio
async def test_checkpoint_overwrite(state):
    await state.save_checkpoint(Checkpoint(backfill_cursor=date(2024, 1, 4)))
    await state.save_checkpoint(Checkpoint(backfill_cursor=date(2024, 1, 1)))
    assert (await state.load_checkpoint()).backfill_cursor == date(2024, 1, 1)


def test_cursor_never_moves_forward():
    """Test that the backfill cursor refuses to move toward the present."""
    checkpoint = Checkpoint(backfill_cursor=date(2024, 1, 4))
    with pytest.raises(ValueError):
        checkpoint.with_cursor(date(2024, 1, 5))


def test_cursor_at_floor_marks_complete():
    checkpoint = Checkpoint().with_cursor(date(2018, 1, 1), floor=date(2018, 1, 1))
    assert checkpoint.backfill_complete is True


@pytest.mark.asyncio
async def test_call_log_append_and_read_newest_first(state):
    """Test that call log entries come back newest first with every field intact."""
    first = await state.append_call_log(
        CallLogEntry(
            context=CallContext.INCREMENTAL,
            window_from=date(2024, 6, 10),
            window_to=date(2024, 6, 13),
            pages_consumed=1,
            records_returned=4,
        )
    )
    second = await state.append_call_log(
        CallLogEntry(context=CallContext.BACKFILL, rate_limited=True, error="Rate limited (HTTP 429)")
    )
    assert second > first

    calls = await state.recent_calls(10)
    assert [c.id for c in calls] == [second, first]
    assert calls[0].rate_limited is True
    assert calls[0].error == "Rate limited (HTTP 429)"
    assert calls[1].context == CallContext.INCREMENTAL
    assert calls[1].window_from == date(2024, 6, 10)
    assert calls[1].records_returned == 4


@pytest.mark.asyncio
async def test_call_log_long_error_truncated(state):
    await state.append_call_log(CallLogEntry(context=CallContext.MANUAL, error="x" * 5000))
    calls = await state.recent_calls(1)
    assert len(calls[0].error) == 1000


@pytest.mark.asyncio
async def test_call_log_limit(state):
    for _ in range(3):
        await state.append_call_log(CallLogEntry(context=CallContext.MANUAL))
    assert len(await state.recent_calls(2)) == 2


@pytest.mark.asyncio
async def test_second_run_is_refused(state):
    """Test that only one harvesting run may hold the lock."""
    await state.acquire_run_lock("run-1", ttl_minutes=60)
    with pytest.raises(RunInProgress):
        await state.acquire_run_lock("run-2", ttl_minutes=60)


@pytest.mark.asyncio
async def test_release_allows_next_run(state):
    await state.acquire_run_lock("run-1", ttl_minutes=60)
    await state.release_run_lock("run-1")
    await state.acquire_run_lock("run-2", ttl_minutes=60)


@pytest.mark.asyncio
async def test_release_by_other_run_is_ignored(state):
    await state.acquire_run_lock("run-1", ttl_minutes=60)
    await state.release_run_lock("run-2")
    with pytest.raises(RunInProgress):
        await state.acquire_run_lock("run-3", ttl_minutes=60)


@pytest.mark.asyncio
async def test_stale_lock_taken_over(state):
    """Test that a lock left behind by a dead run expires."""
    stale = (datetime.now(timezone.utc) - timedelta(hours=3)).isoformat()
    async with state.transaction() as db:
        await db.execute(
            "INSERT INTO run_lock (id, run_id, acquired_at) VALUES (1, ?, ?)", ("dead", stale)
        )
    await state.acquire_run_lock("run-2", ttl_minutes=60)

    async with state.connect() as db:
        cursor = await db.execute("SELECT run_id FROM run_lock")
        assert (await cursor.fetchone())[0] == "run-2"


@pytest.mark.asyncio
async def test_save_refused_after_takeover(state):
    """Test that a run whose lease expired and was taken over cannot save."""
    await state.save_checkpoint(Checkpoint(backfill_cursor=date(2024, 1, 4)))
    await state.acquire_run_lock("run-a", ttl_minutes=60)
    await _age_lock(state)
    await state.acquire_run_lock("run-b", ttl_minutes=60)

    with pytest.raises(RunInProgress):
        await state.save_checkpoint(Checkpoint(backfill_cursor=date(2023, 12, 1)), run_id="run-a")

    assert (await state.load_checkpoint()).backfill_cursor == date(2024, 1, 4)
    await state.save_checkpoint(Checkpoint(backfill_cursor=date(2023, 12, 1)), run_id="run-b")
    assert (await state.load_checkpoint()).backfill_cursor == date(2023, 12, 1)


@pytest.mark.asyncio
async def test_save_renews_lease(state):
    """Test that saving a checkpoint keeps the holder's lease from expiring."""
    await state.acquire_run_lock("run-a", ttl_minutes=60)
    await _age_lock(state)

    await state.save_checkpoint(Checkpoint(backfill_cursor=date(2024, 1, 4)), run_id="run-a")

    with pytest.raises(RunInProgress):
        await state.acquire_run_lock("run-b", ttl_minutes=60)


@pytest.mark.asyncio
async def test_renew_run_lock(state):
    """Test that renewing refreshes the holder's lease and refuses anyone else."""
    await state.acquire_run_lock("run-a", ttl_minutes=60)
    await _age_lock(state)

    await state.renew_run_lock("run-a")
    with pytest.raises(RunInProgress):
        await state.acquire_run_lock("run-b", ttl_minutes=60)
    with pytest.raises(RunInProgress):
        await state.renew_run_lock("run-b")


@pytest.mark.asyncio
async def test_renew_without_lock_is_refused(state):
    with pytest.raises(RunInProgress):
        await state.renew_run_lock("run-a")

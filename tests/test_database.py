"""
Tests for the document store and its optimistic transactions.
"""

import asyncio
from datetime import date

import pytest

from shiftswap import database, errors, models
from shiftswap.database import ASSIGNMENTS, NOTIFICATIONS, store


def notice(doc_id: str, body: str = "") -> models.Notification:
    return models.Notification(
        id=doc_id,
        recipient_id="u-xavier",
        title="Test",
        body=body,
        category=models.NotificationCategory.SYSTEM,
    )


def assignment(user_id: str, doc_id: str | None = None) -> models.ShiftAssignment:
    fields = dict(
        date=date(2026, 3, 10),
        shift_slot=models.ShiftSlot.DAY,
        user_id=user_id,
        user_name=user_id,
        staff_role=models.StaffRole.DRIVER,
    )
    if doc_id is not None:
        fields["id"] = doc_id
    return models.ShiftAssignment(**fields)


def test_key_value_database() -> None:
    db = database.InMemoryKeyValueDatabase[str, int]()
    db.put("a", 1)
    db.put("b", 2)
    db.delete("missing")

    assert db.get("a") == 1
    assert "b" in db
    assert sorted(db) == [1, 2]
    assert len(db) == 2

    db.clear()
    assert db.all() == []


@pytest.mark.asyncio
async def test_exception_aborts_all_writes() -> None:
    async def fail_halfway(tx: database.Transaction) -> None:
        tx.set(NOTIFICATIONS, notice("n-1"))
        tx.set(NOTIFICATIONS, notice("n-2"))
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await store.run_transaction(fail_halfway)

    assert await store.query(NOTIFICATIONS) == []


@pytest.mark.asyncio
async def test_unique_violation_aborts_whole_transaction() -> None:
    await store.put(ASSIGNMENTS, assignment("u-xavier", "a-1"))

    async def write_both(tx: database.Transaction) -> None:
        tx.set(NOTIFICATIONS, notice("n-1"))
        tx.set(ASSIGNMENTS, assignment("u-xavier", "a-2"))

    with pytest.raises(errors.DuplicateAssignment):
        await store.run_transaction(write_both)

    assert await store.get(NOTIFICATIONS, "n-1") is None
    assert [a.id for a in await store.query(ASSIGNMENTS)] == ["a-1"]


@pytest.mark.asyncio
async def test_unique_key_can_move_between_documents() -> None:
    """
    Deleting one document and writing another with the same key in a single
    transaction is allowed.
    """
    await store.put(ASSIGNMENTS, assignment("u-xavier", "a-1"))

    async def replace(tx: database.Transaction) -> None:
        tx.delete(ASSIGNMENTS, "a-1")
        tx.set(ASSIGNMENTS, assignment("u-xavier", "a-2"))

    await store.run_transaction(replace)

    assert [a.id for a in await store.query(ASSIGNMENTS)] == ["a-2"]


@pytest.mark.asyncio
async def test_stale_read_is_retried() -> None:
    """
    Two transactions read the same document and write it back. The second to
    commit sees its read went stale and re-runs on fresh data.
    """
    await store.put(NOTIFICATIONS, notice("n-1"))
    attempts = 0

    async def append(tx: database.Transaction, char: str) -> None:
        nonlocal attempts
        attempts += 1
        doc = await tx.get(NOTIFICATIONS, "n-1")
        await asyncio.sleep(0)
        doc.body += char
        tx.set(NOTIFICATIONS, doc)

    await asyncio.gather(
        store.run_transaction(lambda tx: append(tx, "a")),
        store.run_transaction(lambda tx: append(tx, "b")),
    )

    stored = await store.get(NOTIFICATIONS, "n-1")
    assert sorted(stored.body) == ["a", "b"]
    assert attempts == 3


@pytest.mark.asyncio
async def test_conflict_after_max_attempts() -> None:
    await store.put(NOTIFICATIONS, notice("n-1"))
    attempts = 0

    async def always_stale(tx: database.Transaction) -> None:
        nonlocal attempts
        attempts += 1
        doc = await tx.get(NOTIFICATIONS, "n-1")
        # Someone else writes the document before we commit
        store.collection(NOTIFICATIONS).put(doc.id, doc)
        tx.set(NOTIFICATIONS, doc)

    with pytest.raises(errors.TransactionConflict):
        await store.run_transaction(always_stale, max_attempts=3)

    assert attempts == 3


@pytest.mark.asyncio
async def test_query_read_detects_inserts() -> None:
    attempts = 0

    async def count_then_insert(tx: database.Transaction) -> int:
        nonlocal attempts
        attempts += 1
        existing = await tx.query(NOTIFICATIONS, lambda n: True)
        if attempts == 1:
            store.collection(NOTIFICATIONS).put("n-other", notice("n-other"))
        tx.set(NOTIFICATIONS, notice(f"n-{len(existing)}"))
        return len(existing)

    result = await store.run_transaction(count_then_insert)

    assert attempts == 2
    assert result == 1


@pytest.mark.asyncio
async def test_reads_return_copies() -> None:
    await store.put(NOTIFICATIONS, notice("n-1", body="original"))

    doc = await store.get(NOTIFICATIONS, "n-1")
    doc.body = "changed"

    assert (await store.get(NOTIFICATIONS, "n-1")).body == "original"


@pytest.mark.asyncio
async def test_listeners_fire_on_commit_and_unsubscribe() -> None:
    sync_calls = []
    async_calls = []

    async def on_change_async() -> None:
        async_calls.append(1)

    unsubscribe = store.listen(NOTIFICATIONS, lambda: sync_calls.append(1))
    store.listen(NOTIFICATIONS, on_change_async)

    await store.put(NOTIFICATIONS, notice("n-1"))
    await store.put(ASSIGNMENTS, assignment("u-xavier"))
    assert len(sync_calls) == 1
    assert len(async_calls) == 1

    unsubscribe()
    await store.put(NOTIFICATIONS, notice("n-2"))
    assert len(sync_calls) == 1
    assert len(async_calls) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_fail_commit() -> None:
    def broken() -> None:
        raise RuntimeError("listener exploded")

    store.listen(NOTIFICATIONS, broken)

    await store.put(NOTIFICATIONS, notice("n-1"))

    assert await store.get(NOTIFICATIONS, "n-1") is not None


@pytest.mark.asyncio
async def test_delete_many_counts_existing_only() -> None:
    await store.put(NOTIFICATIONS, notice("n-1"))
    await store.put(NOTIFICATIONS, notice("n-2"))

    assert await store.delete_many(NOTIFICATIONS, ["n-1", "n-2", "n-3"]) == 2
    assert await store.delete_many(NOTIFICATIONS, ["n-1", "n-2"]) == 0
    assert await store.query(NOTIFICATIONS) == []


def test_unknown_collection() -> None:
    with pytest.raises(KeyError):
        store.collection("rosters")

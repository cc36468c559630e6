import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import InMemoryProfileStore, make_profile
from src.storage.base import ChangeListeners


@pytest.mark.asyncio
async def test_empty_store_loads_empty_list(memory_store):
    assert await memory_store.load() == []
    assert memory_store.last_read_failed is False


@pytest.mark.asyncio
async def test_load_newest_first():
    older = make_profile("Eldre", minutes=0)
    newer = make_profile("Nyere", minutes=5)
    store = InMemoryProfileStore()
    store.records = [older.to_record(), newer.to_record()]

    loaded = await store.load()
    assert [p.name for p in loaded] == ["Nyere", "Eldre"]


@pytest.mark.asyncio
async def test_read_failure_degrades_to_empty_list():
    store = InMemoryProfileStore([make_profile()])
    store.fail_reads = True

    assert await store.load() == []
    assert store.last_read_failed is True

    store.fail_reads = False
    assert len(await store.load()) == 1
    assert store.last_read_failed is False


@pytest.mark.asyncio
async def test_malformed_record_fails_whole_load():
    store = InMemoryProfileStore([make_profile("A"), make_profile("B")])
    store.records[1]["achievements"] = [{"category": "skole", "description": "?"}]

    assert await store.load() == []
    assert store.last_read_failed is True


@pytest.mark.asyncio
async def test_unknown_group_column_is_retried_without_it():
    store = InMemoryProfileStore(reject_fields=["group_number"])
    profile = make_profile(group_number="7")

    assert await store.save(profile) is True

    assert len(store.write_attempts) == 2
    assert store.write_attempts[0]["group_number"] == "7"
    assert "group_number" not in store.write_attempts[1]
    loaded = await store.load()
    assert loaded[0].id == profile.id
    assert loaded[0].group_number is None


@pytest.mark.asyncio
async def test_update_is_retried_without_group_column():
    profile = make_profile(group_number="7")
    store = InMemoryProfileStore([profile], reject_fields=["group_number"])

    renamed = profile.model_copy(update={"name": "Kari N."})
    assert await store.update(renamed) is True
    assert len(store.write_attempts) == 2
    assert (await store.load())[0].name == "Kari N."


@pytest.mark.asyncio
async def test_other_rejections_are_not_retried():
    profile = make_profile()
    store = InMemoryProfileStore([profile])

    assert await store.save(profile) is False
    assert len(store.write_attempts) == 1


@pytest.mark.asyncio
async def test_backend_error_returns_false():
    store = InMemoryProfileStore()
    store.fail_writes = True

    assert await store.save(make_profile()) is False
    assert await store.update(make_profile()) is False


@pytest.mark.asyncio
async def test_update_of_missing_profile_returns_false(memory_store):
    assert await memory_store.update(make_profile()) is False


@pytest.mark.asyncio
async def test_unexpected_write_exception_returns_false(memory_store):
    memory_store._insert_record = AsyncMock(side_effect=RuntimeError("boom"))
    assert await memory_store.save(make_profile()) is False


@pytest.mark.asyncio
async def test_subscribers_called_on_change(memory_store):
    callback = MagicMock()
    unsubscribe = memory_store.subscribe(callback)

    await memory_store.save(make_profile())
    assert callback.call_count == 1

    unsubscribe()
    await memory_store.save(make_profile("Ola"))
    assert callback.call_count == 1


@pytest.mark.asyncio
async def test_listeners_schedule_coroutines_and_isolate_errors():
    listeners = ChangeListeners()
    async_callback = AsyncMock()
    failing = MagicMock(side_effect=RuntimeError("listener bug"))
    plain = MagicMock()
    listeners.add(failing)
    listeners.add(async_callback)
    listeners.add(plain)

    listeners.fire()
    await asyncio.sleep(0)

    failing.assert_called_once()
    plain.assert_called_once()
    async_callback.assert_awaited_once()

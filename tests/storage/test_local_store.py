import asyncio
import json
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from conftest import make_profile
from src.storage.base import ChangeListeners
from src.storage.local import LocalProfileStore, ProfileFileHandler


@pytest_asyncio.fixture
async def local_store(tmp_path):
    store = LocalProfileStore(str(tmp_path / "data" / "profiles.json"))
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_missing_file_loads_empty(local_store):
    assert await local_store.load() == []
    assert local_store.last_read_failed is False


@pytest.mark.asyncio
async def test_empty_file_loads_empty(local_store):
    local_store.path.parent.mkdir(parents=True)
    local_store.path.write_text("", encoding="utf-8")

    assert await local_store.load() == []


@pytest.mark.asyncio
async def test_save_and_load_round_trip(local_store):
    first = make_profile("Kari", group_number="2", denominators=["struktur"], minutes=0)
    second = make_profile("Ola", pattern=["alene"], minutes=3)

    assert await local_store.save(first) is True
    assert await local_store.save(second) is True

    loaded = await local_store.load()
    assert loaded == [second, first]

    on_disk = json.loads(local_store.path.read_text(encoding="utf-8"))
    assert [record["id"] for record in on_disk] == [second.id, first.id]
    assert "whatWasIt" in on_disk[0]["top_three"][0]["answers"]


@pytest.mark.asyncio
async def test_duplicate_id_is_rejected(local_store):
    profile = make_profile()
    assert await local_store.save(profile) is True
    assert await local_store.save(profile) is False
    assert len(await local_store.load()) == 1


@pytest.mark.asyncio
async def test_update_replaces_whole_profile(local_store):
    profile = make_profile(denominators=["struktur"])
    await local_store.save(profile)

    edited = profile.model_copy(update={"name": "Kari Nordmann", "group_number": "5", "common_denominators": []})
    assert await local_store.update(edited) is True

    loaded = await local_store.load()
    assert loaded == [edited]


@pytest.mark.asyncio
async def test_update_missing_profile(local_store):
    await local_store.save(make_profile())
    assert await local_store.update(make_profile("Ukjent")) is False


@pytest.mark.asyncio
async def test_corrupt_file_reads_as_failure(local_store):
    local_store.path.parent.mkdir(parents=True)
    local_store.path.write_text("{not json", encoding="utf-8")

    assert await local_store.load() == []
    assert local_store.last_read_failed is True


@pytest.mark.asyncio
async def test_subscribe_starts_and_stops_watcher(local_store):
    unsubscribe_first = local_store.subscribe(MagicMock())
    unsubscribe_second = local_store.subscribe(MagicMock())
    assert local_store._observer is not None

    unsubscribe_first()
    assert local_store._observer is not None
    unsubscribe_second()
    assert local_store._observer is None


@pytest.mark.asyncio
async def test_file_handler_notifies_for_store_file(tmp_path):
    store_path = (tmp_path / "profiles.json").resolve()
    listeners = ChangeListeners()
    callback = MagicMock()
    listeners.add(callback)
    handler = ProfileFileHandler(store_path, asyncio.get_running_loop(), listeners)

    handler.on_any_event(FileModifiedEvent(str(store_path)))
    handler.on_any_event(FileMovedEvent(str(tmp_path / ".profiles-1.tmp"), str(store_path)))
    handler.on_any_event(FileCreatedEvent(str(tmp_path / "other.json")))
    await asyncio.sleep(0)

    assert callback.call_count == 2

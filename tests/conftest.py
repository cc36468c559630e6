from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from src.constants import Category
from src.models.profile import Achievement, Profile, TopAchievement
from src.storage.base import ChangeListeners, ProfileStore
from src.storage.exceptions import ReadFailed, StorageError, WriteRejected

BASE_TIME = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(
    name: str = "Kari",
    categories: Iterable[Category] = (Category.STUDIER, Category.IDRETT, Category.JOBB),
    denominators: Iterable[str] = (),
    pattern: Iterable[str] = (),
    group_number: Optional[str] = None,
    minutes: int = 0,
    profile_id: Optional[str] = None,
) -> Profile:
    """A complete profile; `minutes` offsets created_at so ordering is deterministic."""
    achievements = [
        Achievement(category=category, description=f"{name} achievement {index + 1}")
        for index, category in enumerate(categories)
    ]
    kwargs = {"id": profile_id} if profile_id else {}
    return Profile(
        name=name,
        group_number=group_number,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        achievements=achievements,
        top_three=[TopAchievement.from_achievement(a) for a in achievements[:3]],
        common_denominators=list(denominators),
        performance_pattern=list(pattern),
        **kwargs,
    )


class InMemoryProfileStore(ProfileStore):
    """
    ProfileStore double keeping records in a list.

    `reject_fields` simulates a schema that lacks optional columns;
    `fail_reads`/`fail_writes` simulate an unreachable backend.
    """

    backend_name = "memory"

    def __init__(self, profiles: Iterable[Profile] = (), reject_fields: Iterable[str] = ()):
        super().__init__()
        self.records = [p.to_record() for p in profiles]
        self.reject_fields = set(reject_fields)
        self.fail_reads = False
        self.fail_writes = False
        self.write_attempts = []
        self.listeners = ChangeListeners()

    async def _fetch_records(self):
        if self.fail_reads:
            raise ReadFailed("backend offline")
        return [dict(record) for record in self.records]

    def _check_write(self, record):
        self.write_attempts.append(dict(record))
        if self.fail_writes:
            raise StorageError("backend offline")
        for field in self.reject_fields:
            if field in record:
                raise WriteRejected(f"table profiles has no column named {field}", unknown_field=field)

    async def _insert_record(self, record):
        self._check_write(record)
        if any(existing["id"] == record["id"] for existing in self.records):
            raise WriteRejected("duplicate id")
        self.records.insert(0, dict(record))
        self.listeners.fire()
        return True

    async def _replace_record(self, record):
        self._check_write(record)
        for index, existing in enumerate(self.records):
            if existing["id"] == record["id"]:
                self.records[index] = dict(record)
                self.listeners.fire()
                return True
        return False

    def subscribe(self, callback):
        return self.listeners.add(callback)


@pytest.fixture
def memory_store():
    return InMemoryProfileStore()

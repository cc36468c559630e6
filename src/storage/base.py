import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from src.models.profile import Profile
from src.storage.exceptions import StorageError, WriteRejected

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

# Fields a backend schema may not know about yet. A write rejected because of
# one of these is retried once without it.
OPTIONAL_FIELDS = ("group_number",)


class ChangeListeners:
    """
    Callbacks registered through ProfileStore.subscribe.

    `fire` must run on the event loop thread. Coroutine callbacks are scheduled
    as tasks; errors from a callback are logged and never reach the notifier.
    """

    def __init__(self):
        self._callbacks: List[ChangeCallback] = []
        self._tasks: set = set()

    def add(self, callback: ChangeCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._callbacks)

    def clear(self) -> None:
        self._callbacks.clear()

    def fire(self) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback()
            except Exception as e:
                logger.error(f"Profile change callback {callback!r} failed: {e}", exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Profile change callback task failed: {exc}", exc_info=exc)


class ProfileStore(ABC):
    """
    Persistence adapter for profiles.

    Both backends expose the same four operations: `load`, `save`, `update`
    and `subscribe`. Backends implement the raw record operations; the shared
    parts of the contract (ordering, read-failure degradation and the
    optional-field retry) live here.
    """

    backend_name = "abstract"

    def __init__(self):
        self.last_read_failed = False

    # --- Backend hooks ---

    @abstractmethod
    async def _fetch_records(self) -> List[Dict[str, Any]]:
        """Returns every stored record. Raises on failure."""

    @abstractmethod
    async def _insert_record(self, record: Dict[str, Any]) -> bool:
        """Inserts a new record. Raises WriteRejected when the backend refuses it."""

    @abstractmethod
    async def _replace_record(self, record: Dict[str, Any]) -> bool:
        """Overwrites the record with record['id']. Returns False when it does not exist."""

    @abstractmethod
    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        """Calls `callback()` at least once per change to the profile collection."""

    async def close(self) -> None:
        """Releases backend resources."""
        return None

    # --- Public contract ---

    async def load(self) -> List[Profile]:
        """All profiles, newest first. Returns an empty list when the read fails."""
        try:
            records = await self._fetch_records()
            profiles = [Profile.from_record(record) for record in records]
        except (StorageError, ValidationError, OSError, ValueError) as e:
            logger.error(f"Reading profiles from {self.backend_name} backend failed: {e}", exc_info=True)
            self.last_read_failed = True
            return []
        except Exception as e:
            logger.error(f"Unexpected error reading profiles from {self.backend_name} backend: {e}", exc_info=True)
            self.last_read_failed = True
            return []

        self.last_read_failed = False
        profiles.sort(key=lambda p: p.created_at, reverse=True)
        logger.debug(f"Loaded {len(profiles)} profiles from {self.backend_name} backend")
        return profiles

    async def save(self, profile: Profile) -> bool:
        """Inserts a new profile keyed by its id."""
        return await self._write("save", self._insert_record, profile)

    async def update(self, profile: Profile) -> bool:
        """Replaces the whole stored profile that has the same id."""
        return await self._write("update", self._replace_record, profile)

    async def _write(self, action: str, operation: Callable[[Dict[str, Any]], Awaitable[bool]], profile: Profile) -> bool:
        record = profile.to_record()
        try:
            return await self._attempt(action, operation, record)
        except WriteRejected as e:
            field = e.unknown_field
            if field not in OPTIONAL_FIELDS or field not in record:
                logger.error(f"Profile {action} for {profile.id} rejected by {self.backend_name} backend: {e}")
                return False
            logger.warning(
                f"{self.backend_name} backend does not know field '{field}'. "
                f"Retrying {action} for {profile.id} without it."
            )
            reduced = {key: value for key, value in record.items() if key != field}
            try:
                return await self._attempt(action, operation, reduced)
            except WriteRejected as retry_error:
                logger.error(f"Profile {action} for {profile.id} rejected again without '{field}': {retry_error}")
                return False

    async def _attempt(self, action: str, operation: Callable[[Dict[str, Any]], Awaitable[bool]], record: Dict[str, Any]) -> bool:
        try:
            success = await operation(record)
        except WriteRejected:
            raise
        except StorageError as e:
            logger.error(f"Profile {action} failed on {self.backend_name} backend: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error during profile {action} on {self.backend_name} backend: {e}", exc_info=True)
            return False
        if success:
            logger.info(f"Profile {record.get('id')} stored ({action}) on {self.backend_name} backend")
        else:
            logger.warning(f"Profile {action} for {record.get('id')} did not match any stored profile")
        return success

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from src.storage.base import ChangeCallback, ChangeListeners, ProfileStore, Unsubscribe
from src.storage.exceptions import ReadFailed, WriteRejected

logger = logging.getLogger(__name__)


class ProfileFileHandler(FileSystemEventHandler):
    """Forwards filesystem events for the store file to the event loop."""

    def __init__(self, store_path: Path, loop: asyncio.AbstractEventLoop, listeners: ChangeListeners):
        super().__init__()
        self.store_path = store_path
        self.loop = loop
        self.listeners = listeners

    def _concerns_store(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(p and Path(os.fsdecode(p)).resolve() == self.store_path for p in paths)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in ("created", "modified", "moved", "deleted"):
            return
        if not self._concerns_store(event):
            return
        logger.debug(f"Store file changed ({event.event_type}): {self.store_path}")
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.listeners.fire)


class LocalProfileStore(ProfileStore):
    """
    Single-device backend: every profile in one JSON file, newest inserted first.

    Change notifications come from a filesystem watcher on the file, so other
    processes writing the same file are observed too.
    """

    backend_name = "local"

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path).resolve()
        self._lock = asyncio.Lock()
        self._listeners = ChangeListeners()
        self._observer: Optional[Observer] = None

    # --- File access (run in a worker thread) ---

    def _read_file(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ReadFailed(f"Profile file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise ReadFailed(f"Profile file {self.path} does not contain a list")
        return data

    def _write_file(self, records: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".profiles-", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except Exception:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    # --- ProfileStore hooks ---

    async def _fetch_records(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._read_file)

    async def _insert_record(self, record: Dict[str, Any]) -> bool:
        async with self._lock:
            records = await asyncio.to_thread(self._read_file)
            if any(existing.get("id") == record["id"] for existing in records):
                raise WriteRejected(f"Profile with id '{record['id']}' already exists.")
            records.insert(0, record)
            await asyncio.to_thread(self._write_file, records)
        return True

    async def _replace_record(self, record: Dict[str, Any]) -> bool:
        async with self._lock:
            records = await asyncio.to_thread(self._read_file)
            for index, existing in enumerate(records):
                if existing.get("id") == record["id"]:
                    records[index] = record
                    break
            else:
                return False
            await asyncio.to_thread(self._write_file, records)
        return True

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        remove = self._listeners.add(callback)
        if self._observer is None:
            self._start_watching()

        def unsubscribe() -> None:
            remove()
            if not self._listeners:
                self._stop_watching()

        return unsubscribe

    async def close(self) -> None:
        self._listeners.clear()
        self._stop_watching()

    # --- Watcher lifecycle ---

    def _start_watching(self) -> None:
        loop = asyncio.get_running_loop()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handler = ProfileFileHandler(self.path, loop, self._listeners)
        observer = Observer()
        observer.schedule(handler, str(self.path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.path} for profile changes")

    def _stop_watching(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        logger.info(f"Stopped watching {self.path}")

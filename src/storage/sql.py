import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from src.db.models import Base, profiles_table
from src.db.session import get_session_factory
from src.realtime.feed import ProfileChangeFeed
from src.storage.base import OPTIONAL_FIELDS, ChangeCallback, ProfileStore, Unsubscribe
from src.storage.exceptions import ReadFailed, StorageError, WriteRejected

logger = logging.getLogger(__name__)

# Phrases databases use when a statement names a column the table does not have.
_UNKNOWN_COLUMN_MARKERS = (
    "no column named",      # sqlite
    "has no column",        # sqlite
    "no such column",       # sqlite (update)
    "does not exist",       # postgresql
    "unknown column",       # mysql
    "could not find",       # postgrest schema cache
)


def unknown_field_in(error: Exception) -> Optional[str]:
    """Name of the optional field a backend error complains about, if any."""
    text = str(getattr(error, "orig", None) or error).lower()
    if not any(marker in text for marker in _UNKNOWN_COLUMN_MARKERS):
        return None
    for field in OPTIONAL_FIELDS:
        if field in text:
            return field
    return None


def _to_row(record: Dict[str, Any]) -> Dict[str, Any]:
    row = dict(record)
    created_at = row.get("created_at")
    if isinstance(created_at, str):
        row["created_at"] = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    return row


class SqlProfileStore(ProfileStore):
    """
    Remote relational backend (PostgreSQL in production, SQLite in tests).

    Every successful write is announced on the realtime feed so subscribers in
    all processes refresh.
    """

    backend_name = "remote"

    def __init__(self, engine: AsyncEngine, feed: ProfileChangeFeed):
        super().__init__()
        self.engine = engine
        self.feed = feed
        self._session_factory = get_session_factory(engine)

    async def create_schema(self) -> None:
        """Creates the profiles table when missing. Existing tables are left untouched."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def _existing_columns(self) -> List[str]:
        async with self.engine.connect() as conn:
            columns = await conn.run_sync(
                lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns(profiles_table.name)]
            )
        return columns

    async def _fetch_records(self) -> List[Dict[str, Any]]:
        try:
            present = set(await self._existing_columns())
            columns = [column for column in profiles_table.columns if column.name in present]
            if not columns:
                return []
            stmt = select(*columns).order_by(profiles_table.c.created_at.desc())
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise ReadFailed(f"Could not read profiles: {e}") from e
        return [dict(row) for row in rows]

    async def _insert_record(self, record: Dict[str, Any]) -> bool:
        stmt = insert(profiles_table).values(**_to_row(record))
        await self._execute_write(stmt, record["id"])
        await self.feed.publish("INSERT", record["id"])
        return True

    async def _replace_record(self, record: Dict[str, Any]) -> bool:
        values = _to_row(record)
        profile_id = values.pop("id")
        stmt = update(profiles_table).where(profiles_table.c.id == profile_id).values(**values)
        matched = await self._execute_write(stmt, profile_id)
        if not matched:
            return False
        await self.feed.publish("UPDATE", profile_id)
        return True

    async def _execute_write(self, stmt, profile_id: str) -> int:
        async with self._session_factory() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount
            except IntegrityError as e:
                await session.rollback()
                logger.warning(f"Constraint violation writing profile {profile_id}: {e.orig}")
                raise WriteRejected(f"Constraint violation: {e.orig}", original_exception=e) from e
            except DBAPIError as e:
                await session.rollback()
                field = unknown_field_in(e)
                if field:
                    raise WriteRejected(f"Schema does not support '{field}': {e.orig}", unknown_field=field, original_exception=e) from e
                raise StorageError(f"Database error writing profile {profile_id}: {e}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Database error writing profile {profile_id}: {e}") from e

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        return self.feed.subscribe(callback)

    async def close(self) -> None:
        await self.feed.close()
        await self.engine.dispose()
        logger.info("Remote profile store closed.")

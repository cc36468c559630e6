import logging

from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError

from config.settings import AppSettings, DatabaseSettings, RealtimeSettings
from src.db.session import get_async_engine, normalise_async_url
from src.realtime.feed import ProfileChangeFeed
from src.storage.base import ProfileStore
from src.storage.exceptions import BackendUnavailable
from src.storage.local import LocalProfileStore
from src.storage.sql import SqlProfileStore

logger = logging.getLogger(__name__)


def build_remote_store(db_settings: DatabaseSettings, realtime_settings: RealtimeSettings) -> SqlProfileStore:
    """Creates the remote store. Raises BackendUnavailable when no usable database is configured."""
    db_url = normalise_async_url(db_settings.database_url)
    if not db_url:
        raise BackendUnavailable("DATABASE_URL is not set")
    try:
        engine = get_async_engine(db_url, echo=db_settings.database_echo)
    except (ArgumentError, NoSuchModuleError, ImportError, ValueError) as e:
        raise BackendUnavailable(f"Could not create database engine: {e}") from e
    feed = ProfileChangeFeed(realtime_settings.redis_url, realtime_settings.redis_channel)
    return SqlProfileStore(engine, feed)


async def create_profile_store(
    app_settings: AppSettings,
    db_settings: DatabaseSettings,
    realtime_settings: RealtimeSettings,
) -> ProfileStore:
    """
    Selects the persistence backend: the remote database when it is configured,
    otherwise the local single-device file store.
    """
    try:
        store = build_remote_store(db_settings, realtime_settings)
    except BackendUnavailable as e:
        logger.warning(f"Remote profile backend unavailable ({e}); using local store at {app_settings.local_store_path}")
        return LocalProfileStore(app_settings.local_store_path)

    try:
        await store.create_schema()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Remote profile backend unreachable ({e}); using local store at {app_settings.local_store_path}")
        await store.engine.dispose()
        return LocalProfileStore(app_settings.local_store_path)
    await store.feed.connect()
    logger.info("Using remote profile backend")
    return store

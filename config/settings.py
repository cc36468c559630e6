from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# Load .env file if it exists, for local development
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()


class AppSettings(BaseSettings):
    log_level: str = "INFO"
    local_store_path: str = "data/profiles.json"
    catalog_path: Optional[str] = None
    cookie_name: str = "topprestasjon_profile_id"
    cookie_max_age_days: int = 365
    wizard_ttl_minutes: int = 120

    model_config = SettingsConfigDict(env_prefix='TOPPRESTASJON_')


class DatabaseSettings(BaseSettings):
    # Unset means no remote backend is configured; the local store is used instead.
    database_url: Optional[str] = None
    database_echo: bool = False

    model_config = SettingsConfigDict(env_prefix='')


class RealtimeSettings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    redis_channel: str = "topprestasjon:profiles"

    model_config = SettingsConfigDict(env_prefix='')


def get_app_settings() -> AppSettings:
    return AppSettings()


def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()


def get_realtime_settings() -> RealtimeSettings:
    return RealtimeSettings()

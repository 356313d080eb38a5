"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings
from pydantic import Field


DEFAULT_CACHE_TTLS = {
    "userProfile": 5 * 60,
    "events": 2 * 60,
    "eventDetails": 10 * 60,
    "notifications": 1 * 60,
    "memberDirectory": 15 * 60,
}


class Settings(BaseSettings):
    """Sync service configuration from environment variables."""

    # Operator bot (optional, runs headless without it)
    bot_token: str | None = Field(default=None, alias="BOT_TOKEN")
    admin_ids: list[int] = Field(default_factory=list, alias="ADMIN_IDS")

    # Document store
    db_host: str = Field(default="db", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")
    db_name: str = Field(default="lcc_assemble", alias="DB_NAME")
    db_user: str = Field(default="postgres", alias="DB_USER")
    db_password: str = Field(default="postgres", alias="DB_PASSWORD")
    database_url_override: str | None = Field(default=None, alias="DATABASE_URL")

    # Durable local storage
    data_dir: str = Field(default="data/storage", alias="DATA_DIR")

    # Offline queue
    offline_queue_storage_key: str = Field(
        default="lcc_assemble_offline_queue", alias="OFFLINE_QUEUE_STORAGE_KEY"
    )
    offline_queue_max_retries: int = Field(default=3, alias="OFFLINE_QUEUE_MAX_RETRIES")

    # Cache TTLs in seconds, keyed by resource type
    cache_default_ttl_seconds: int = Field(default=300, alias="CACHE_DEFAULT_TTL_SECONDS")
    cache_ttl_seconds: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_CACHE_TTLS), alias="CACHE_TTL_SECONDS"
    )

    # Connectivity probe
    connectivity_check_seconds: int = Field(default=30, alias="CONNECTIVITY_CHECK_SECONDS")
    connectivity_timeout_seconds: float = Field(default=5.0, alias="CONNECTIVITY_TIMEOUT_SECONDS")

    @property
    def database_url(self) -> str:
        """Build async PostgreSQL connection string unless DATABASE_URL is set."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Singleton instance
settings = Settings()

from datetime import datetime
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from saddle_serials.domain.config import RateLimitPolicy, ShopifyApiConfig, SyncPolicy


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    SHOPIFY_API_KEY: str = ""
    SHOPIFY_API_SECRET: str  # also signs webhook deliveries
    SHOPIFY_APP_URL: str = ""
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_SHOP: str | None = None  # shop synced by the command-line entrypoint

    DATABASE_URL: str = "sqlite:///saddle_serials.db"

    SYNC_PAGE_SIZE: int = 250
    SYNC_MAX_BATCHES: int = 100
    SYNC_PAGE_DELAY_SECONDS: float = 0.5
    SYNC_SINCE_DATE: datetime | None = None
    SHOPIFY_COST_BUFFER: int = 50
    HTTP_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    def api_config(self) -> ShopifyApiConfig:
        return ShopifyApiConfig(
            api_version=self.SHOPIFY_API_VERSION,
            timeout_seconds=self.HTTP_TIMEOUT_SECONDS,
            rate_limit=RateLimitPolicy(
                page_delay_seconds=self.SYNC_PAGE_DELAY_SECONDS,
                cost_buffer=self.SHOPIFY_COST_BUFFER,
            ),
        )

    def sync_policy(self) -> SyncPolicy:
        return SyncPolicy(
            page_size=self.SYNC_PAGE_SIZE,
            max_batches=self.SYNC_MAX_BATCHES,
            since_date=self.SYNC_SINCE_DATE,
        )


@lru_cache
def get_config() -> Config:
    return Config()  # type: ignore[call-arg]

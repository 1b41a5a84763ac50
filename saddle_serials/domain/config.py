"""Explicit configuration handed to the sync engine and webhook reconciler."""

from datetime import datetime

from pydantic import BaseModel, Field

# Shopify rejects `first` above 250 on connection fields
MAX_PAGE_SIZE = 250


class RateLimitPolicy(BaseModel):
    page_delay_seconds: float = Field(default=0.5, ge=0)
    # Query-cost points kept in reserve before the next page is requested
    cost_buffer: int = Field(default=50, ge=0)


class ShopifyApiConfig(BaseModel):
    api_version: str = "2024-10"
    timeout_seconds: float = Field(default=30.0, gt=0)
    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)


class SyncPolicy(BaseModel):
    page_size: int = Field(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    max_batches: int = Field(default=100, ge=1)
    since_date: datetime | None = None

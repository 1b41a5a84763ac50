from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ShopCredentials(BaseModel):
    """Access credentials for one shop, as stored by the session provider."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    shop: str  # e.g. "saddlery.myshopify.com"
    access_token: str
    is_online: bool = False
    scope: str | None = None
    expires: datetime | None = None


def offline_session_id(shop: str) -> str:
    return f"offline_{shop}"

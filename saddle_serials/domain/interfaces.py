from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from .order import OrderPage, RemoteOrder
from .session import ShopCredentials


class IOrderSource(Protocol):
    def fetch_page(
        self,
        cursor: str | None,
        page_size: int,
        since: datetime | None = None,
    ) -> OrderPage: ...

    def map_node(self, node: dict) -> RemoteOrder: ...


class IOrderSourceFactory(Protocol):
    def __call__(self, credentials: ShopCredentials) -> IOrderSource: ...


class IProductTagLookup(Protocol):
    def tags_for(self, shop: str, product_ids: Iterable[str]) -> dict[str, list[str]]:
        """Return tags keyed by product GID; unknown products are omitted."""
        ...


class ICredentialsProvider(Protocol):
    def find_for_shop(self, shop: str) -> ShopCredentials | None: ...

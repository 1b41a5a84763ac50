from dataclasses import dataclass

import httpx
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from saddle_serials.application.order_queries import OrderQueries
from saddle_serials.application.order_sync import OrderSyncEngine
from saddle_serials.application.serial_service import SerialNumberService
from saddle_serials.application.webhook_reconciler import WebhookReconciler
from saddle_serials.application.webhook_registration import WebhookRegistrar
from saddle_serials.domain.session import ShopCredentials
from saddle_serials.entrypoints.settings import Config
from saddle_serials.infrastructure.database import (
    create_db_engine,
    create_session_factory,
    init_db,
)
from saddle_serials.infrastructure.order_repository import ShopifyOrderRepository
from saddle_serials.infrastructure.product_repository import ShopifyProductTagLookup
from saddle_serials.infrastructure.session_store import SessionStore
from saddle_serials.infrastructure.shopify_client import ShopifyClientFactory


@dataclass
class Container:
    """Everything the HTTP app and the sync command need, wired once."""

    config: Config
    engine: Engine
    session_factory: sessionmaker[Session]
    sessions: SessionStore
    clients: ShopifyClientFactory
    sync_engine: OrderSyncEngine
    reconciler: WebhookReconciler
    serials: SerialNumberService
    orders: OrderQueries

    def registrar_for(self, credentials: ShopCredentials) -> WebhookRegistrar:
        return WebhookRegistrar(self.clients.for_credentials(credentials))

    def close(self) -> None:
        self.clients.close()
        self.engine.dispose()


def build_container(config: Config, http_client: httpx.Client | None = None) -> Container:
    """Wire the app from ``config``.

    Pass ``http_client`` (e.g. one built on ``httpx.MockTransport``) to keep
    Shopify traffic off the network.
    """
    engine = create_db_engine(config.DATABASE_URL)
    init_db(engine)
    session_factory = create_session_factory(engine)

    api_config = config.api_config()
    sessions = SessionStore(session_factory)
    clients = ShopifyClientFactory(api_config, client=http_client)

    def order_source(credentials: ShopCredentials) -> ShopifyOrderRepository:
        return ShopifyOrderRepository(clients.for_credentials(credentials), api_config.rate_limit)

    return Container(
        config=config,
        engine=engine,
        session_factory=session_factory,
        sessions=sessions,
        clients=clients,
        sync_engine=OrderSyncEngine(
            session_factory,
            order_source,
            policy=config.sync_policy(),
            rate_limit=api_config.rate_limit,
        ),
        reconciler=WebhookReconciler(
            session_factory, ShopifyProductTagLookup(sessions, clients)
        ),
        serials=SerialNumberService(session_factory),
        orders=OrderQueries(session_factory),
    )

from loguru import logger

from saddle_serials.application.order_sync import OrderSyncEngine
from saddle_serials.domain.interfaces import ICredentialsProvider
from saddle_serials.domain.results import SyncOptions, SyncResult


class Executor:
    """Runs one order sync for a shop outside the HTTP app (cron, shell)."""

    def __init__(self, credentials: ICredentialsProvider, sync_engine: OrderSyncEngine) -> None:
        self._credentials = credentials
        self._sync_engine = sync_engine

    def run(self, shop: str, options: SyncOptions | None = None) -> SyncResult:
        logger.info(f"Syncing saddle orders for {shop}…")
        credentials = self._credentials.find_for_shop(shop)
        if credentials is None:
            logger.error(f"No session stored for {shop}; install the app on the shop first.")
            return SyncResult(success=False, error=f"No active session found for shop: {shop}")

        result = self._sync_engine.sync(credentials, options)
        if result.success:
            logger.info(
                f"Done. {result.total_orders} order(s), {result.saddle_line_items} saddle "
                f"line item(s) across {result.batch_count} batch(es)."
            )
        else:
            logger.error(f"Sync failed after {result.batch_count} batch(es): {result.error}")
        return result

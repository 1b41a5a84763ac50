import time
from collections.abc import Callable
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from saddle_serials.application.order_writer import upsert_line_item, upsert_order
from saddle_serials.domain.config import MAX_PAGE_SIZE, RateLimitPolicy, SyncPolicy
from saddle_serials.domain.interfaces import IOrderSource, IOrderSourceFactory
from saddle_serials.domain.results import SyncOptions, SyncResult
from saddle_serials.domain.session import ShopCredentials
from saddle_serials.shared.decorators import log_duration


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class OrderSyncEngine:
    """Imports the shop's orders into the local cache.

    Pages are fetched newest-first and each page is committed before the next
    one is requested, so an aborted run keeps everything written so far.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        source_factory: IOrderSourceFactory,
        policy: SyncPolicy | None = None,
        rate_limit: RateLimitPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._source_factory = source_factory
        self._policy = policy or SyncPolicy()
        self._rate_limit = rate_limit or RateLimitPolicy()
        self._sleep = sleep

    @log_duration
    def sync(self, credentials: ShopCredentials, options: SyncOptions | None = None) -> SyncResult:
        options = options or SyncOptions(limit=self._policy.page_size)
        page_size = min(options.limit, MAX_PAGE_SIZE)
        since = _as_utc(options.since_date or self._policy.since_date)
        result = SyncResult(success=True)

        logger.info(
            f"[Sync] Starting order sync for {credentials.shop} "
            f"(page size {page_size}, saddle-only={options.only_saddle_orders}, since={since})"
        )

        try:
            source = self._source_factory(credentials)
            cursor: str | None = None
            while result.batch_count < self._policy.max_batches:
                page = source.fetch_page(cursor, page_size, since)
                result.batch_count += 1

                with self._session_factory.begin() as db:
                    for node in page.nodes:
                        self._process_node(db, source, node, options, since, result)
                logger.info(
                    f"[Sync] Batch {result.batch_count}: {len(page.nodes)} order(s) fetched, "
                    f"{result.total_orders} stored so far"
                )

                if not page.has_next_page:
                    break
                cursor = page.end_cursor
                if result.batch_count < self._policy.max_batches:
                    self._sleep(self._rate_limit.page_delay_seconds)
            else:
                logger.warning(
                    f"[Sync] Stopped after {self._policy.max_batches} batches; "
                    f"more orders remain on {credentials.shop}"
                )
        except Exception as exc:
            logger.error(f"[Sync] Order sync for {credentials.shop} aborted: {type(exc).__name__}: {exc}")
            result.success = False
            result.error = str(exc) or type(exc).__name__
            return result

        logger.info(
            f"[Sync] Done: {result.total_orders} order(s) "
            f"({result.orders_created} new, {result.orders_updated} updated, "
            f"{result.orders_failed} failed), {result.saddle_line_items}/"
            f"{result.total_line_items} saddle line item(s), {result.batch_count} batch(es)"
        )
        return result

    @staticmethod
    def _process_node(
        db: Session,
        source: IOrderSource,
        node: dict,
        options: SyncOptions,
        since: datetime | None,
        result: SyncResult,
    ) -> None:
        """Upsert one order inside a savepoint; a failure skips only this order."""
        label = node.get("name") or node.get("id") or "<unknown>"
        try:
            remote = source.map_node(node)
            if since is not None and remote.created_at < since:
                logger.debug(f"[Sync] {remote.name} created before {since:%Y-%m-%d}, skipped")
                return
            if options.only_saddle_orders and not remote.has_saddles:
                logger.debug(f"[Sync] {remote.name} has no saddles, skipped")
                return

            with db.begin_nested():
                order, created = upsert_order(db, remote)
                for item in remote.line_items:
                    upsert_line_item(db, order, item)
        except Exception as exc:
            result.orders_failed += 1
            logger.error(f"[Sync] Skipping order {label}: {type(exc).__name__}: {exc}")
            return

        result.total_orders += 1
        if created:
            result.orders_created += 1
        else:
            result.orders_updated += 1
        result.total_line_items += len(remote.line_items)
        result.saddle_line_items += len(remote.saddle_line_items)

from datetime import UTC, datetime
from enum import StrEnum

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from saddle_serials.application.order_mapper import map_webhook_payload, payload_product_ids
from saddle_serials.application.order_writer import find_order, upsert_line_item, upsert_order
from saddle_serials.domain.interfaces import IProductTagLookup
from saddle_serials.domain.order import RemoteOrder
from saddle_serials.domain.results import (
    ReconcileApplied,
    ReconcileFailed,
    ReconcileResult,
    ReconcileSkipped,
)
from saddle_serials.infrastructure.models import SerialNumber

CANCELLED_STATUS = "CANCELLED"
CANCEL_NOTE = "[CANCELLED via webhook]"


class OrderEvent(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: str) -> "OrderEvent":
        """Accept ``create``/``update``/``updated``/``cancelled`` or an ``orders/...`` topic."""
        name = value.strip().lower().removeprefix("orders/")
        if name == "updated":
            name = "update"
        return cls(name)


class WebhookReconciler:
    """Applies single-order webhook deliveries to the local cache.

    Uses the same classifier and upserts as the bulk sync. Serial numbers are
    never deleted here, even when an order edit shrinks a line item below the
    number of serials already entered; those line items are reported for
    manual review instead.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        tag_lookup: IProductTagLookup,
    ) -> None:
        self._session_factory = session_factory
        self._tag_lookup = tag_lookup

    def reconcile(self, payload: dict, event_type: str, shop: str) -> ReconcileResult:
        label = (payload.get("name") or payload.get("id")) if isinstance(payload, dict) else None
        logger.info(f"[Webhook] Processing {event_type} for order {label} from {shop}")
        try:
            if not isinstance(payload, dict):
                raise TypeError(f"Expected an order object, got {type(payload).__name__}")
            event = OrderEvent.parse(event_type)
            remote = map_webhook_payload(payload, self._lookup_tags(payload, shop))

            if not remote.has_saddles:
                logger.info(f"[Webhook] Order {remote.name} has no saddles, skipping")
                return ReconcileSkipped(reason="no_saddles")

            if event is OrderEvent.CANCELLED:
                return self._cancel(remote)
            return self._upsert(remote, event)
        except Exception as exc:
            logger.error(f"[Webhook] {event_type} for order {label} failed: {type(exc).__name__}: {exc}")
            return ReconcileFailed(error=str(exc) or type(exc).__name__)

    def _lookup_tags(self, payload: dict, shop: str) -> dict[str, list[str]]:
        product_ids = payload_product_ids(payload)
        if not product_ids:
            return {}
        try:
            return self._tag_lookup.tags_for(shop, product_ids)
        except Exception as exc:
            logger.warning(f"[Webhook] Tag lookup for {shop} failed, treating items as untracked: {exc}")
            return {}

    def _cancel(self, remote: RemoteOrder) -> ReconcileApplied:
        with self._session_factory.begin() as db:
            order = find_order(db, remote.id)
            if order is None:
                logger.info(f"[Webhook] Cancelled order {remote.name} is not tracked, nothing to do")
                return ReconcileApplied(action=OrderEvent.CANCELLED, order=remote.name, changed=False)

            order.financial_status = CANCELLED_STATUS
            order.fulfillment_status = CANCELLED_STATUS
            if not (order.note or "").endswith(CANCEL_NOTE):
                order.note = f"{order.note or ''}\n{CANCEL_NOTE}".strip()
            order.last_synced_at = datetime.now(UTC)

        logger.info(f"[Webhook] Order {remote.name} marked as cancelled")
        return ReconcileApplied(action=OrderEvent.CANCELLED, order=remote.name)

    def _upsert(self, remote: RemoteOrder, event: OrderEvent) -> ReconcileApplied:
        review_required: list[str] = []
        saddle_items = remote.saddle_line_items

        with self._session_factory.begin() as db:
            order, created = upsert_order(db, remote)
            for item in saddle_items:
                line_item, previous_quantity = upsert_line_item(db, order, item)
                if previous_quantity is None or previous_quantity == item.quantity:
                    continue

                serial_count = db.scalar(
                    select(func.count())
                    .select_from(SerialNumber)
                    .where(SerialNumber.line_item_id == line_item.id)
                )
                logger.info(
                    f"[Webhook] Quantity changed for {item.title}: "
                    f"{previous_quantity} -> {item.quantity} ({serial_count} serials exist)"
                )
                if item.quantity < serial_count:
                    # Serials stay for the audit trail; the next manual save prunes them
                    logger.warning(
                        f"[Webhook] {item.title} on {remote.name} now needs {item.quantity} "
                        f"serial(s) but {serial_count} are recorded; manual review needed"
                    )
                    review_required.append(item.id)

        logger.info(
            f"[Webhook] Order {remote.name} {'created' if created else 'updated'} "
            f"with {len(saddle_items)} saddle line item(s)"
        )
        return ReconcileApplied(
            action=event,
            order=remote.name,
            line_items=len(saddle_items),
            review_required=review_required,
        )

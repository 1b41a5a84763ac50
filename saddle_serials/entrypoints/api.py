"""HTTP surface: admin actions, serial entry form, and Shopify webhook receivers."""

import json
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from saddle_serials.application.order_queries import OrderView
from saddle_serials.domain.errors import NotFoundError
from saddle_serials.domain.results import ReconcileFailed, SyncOptions
from saddle_serials.domain.session import ShopCredentials
from saddle_serials.entrypoints.container import Container
from saddle_serials.shared.security import verify_webhook_hmac

WEBHOOK_TOPICS = {"create", "updated", "cancelled"}

admin_router = APIRouter(prefix="/app", tags=["admin"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
maintenance_router = APIRouter(tags=["maintenance"])


def get_container(request: Request) -> Container:
    return request.app.state.container


def require_credentials(
    shop: Annotated[str, Query(min_length=1)],
    container: Annotated[Container, Depends(get_container)],
) -> ShopCredentials:
    """Resolve the shop's stored session; the OAuth flow that writes it lives elsewhere."""
    credentials = container.sessions.find_for_shop(shop)
    if credentials is None:
        raise HTTPException(status_code=401, detail=f"No active session found for shop: {shop}")
    return credentials


ContainerDep = Annotated[Container, Depends(get_container)]
CredentialsDep = Annotated[ShopCredentials, Depends(require_credentials)]


class OrderList(BaseModel):
    shop: str
    orders: list[OrderView]


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.post("/sync")
def sync_orders(credentials: CredentialsDep, container: ContainerDep) -> JSONResponse:
    result = container.sync_engine.sync(
        credentials, SyncOptions(limit=container.config.SYNC_PAGE_SIZE, only_saddle_orders=True)
    )
    return JSONResponse(result.model_dump(by_alias=True, mode="json", exclude_none=True))


@admin_router.get("/orders")
def list_orders(credentials: CredentialsDep, container: ContainerDep) -> OrderList:
    return OrderList(shop=credentials.shop, orders=container.orders.list_saddle_orders())


@admin_router.get("/orders/{order_id}")
def order_detail(order_id: int, container: ContainerDep) -> OrderView:
    try:
        return container.orders.get_order_detail(order_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@admin_router.post("/orders/{order_id}/serials")
async def save_serials(order_id: int, request: Request, container: ContainerDep) -> JSONResponse:
    """Form fields: repeated ``lineItemId`` plus repeated ``serials_<lineItemId>``."""
    form = await request.form()
    action = form.get("action")
    if action is not None and action != "save_serials":
        return JSONResponse({"success": False, "error": "Unknown action"}, status_code=400)

    submissions: dict[int, list[str]] = {}
    for raw_id in form.getlist("lineItemId"):
        try:
            line_item_id = int(raw_id)
        except ValueError:
            return JSONResponse(
                {"success": False, "error": f"Invalid line item id: {raw_id}"}, status_code=400
            )
        submissions[line_item_id] = [str(value) for value in form.getlist(f"serials_{raw_id}")]

    try:
        result = await run_in_threadpool(container.serials.save_for_order, order_id, submissions)
    except NotFoundError as exc:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=404)

    return JSONResponse(
        result.model_dump(by_alias=True, mode="json", exclude_none=True),
        status_code=200 if result.success else 422,
    )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@webhook_router.post("/orders/{topic}")
async def order_webhook(
    topic: str,
    request: Request,
    container: ContainerDep,
    x_shopify_hmac_sha256: Annotated[str | None, Header()] = None,
    x_shopify_shop_domain: Annotated[str | None, Header()] = None,
    x_shopify_topic: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    if topic not in WEBHOOK_TOPICS:
        raise HTTPException(status_code=404, detail=f"Unknown webhook topic: {topic}")

    body = await request.body()
    if not x_shopify_hmac_sha256 or not x_shopify_shop_domain:
        logger.error("[Webhook] Missing webhook headers")
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    if not verify_webhook_hmac(body, x_shopify_hmac_sha256, container.config.SHOPIFY_API_SECRET):
        logger.error(f"[Webhook] HMAC validation failed for {x_shopify_shop_domain}")
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    logger.info(f"[Webhook] Received {x_shopify_topic or topic} from {x_shopify_shop_domain}")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.error(f"[Webhook] Unreadable payload from {x_shopify_shop_domain}: {exc}")
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)
    if not isinstance(payload, dict):
        logger.error(f"[Webhook] Payload from {x_shopify_shop_domain} is not an order object")
        return JSONResponse({"error": "Invalid payload"}, status_code=400)

    result = await run_in_threadpool(
        container.reconciler.reconcile, payload, topic, x_shopify_shop_domain
    )
    # Shopify retries non-2xx deliveries; only real failures should be retried
    status_code = 500 if isinstance(result, ReconcileFailed) else 200
    return JSONResponse(result.model_dump(by_alias=True, mode="json"), status_code=status_code)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@maintenance_router.post("/admin/register-webhooks")
def register_webhooks(credentials: CredentialsDep, container: ContainerDep) -> list[dict]:
    app_url = container.config.SHOPIFY_APP_URL
    if not app_url:
        raise HTTPException(status_code=400, detail="SHOPIFY_APP_URL is not configured")
    return container.registrar_for(credentials).register(app_url)


@maintenance_router.get("/debug/webhooks")
def list_webhooks(credentials: CredentialsDep, container: ContainerDep) -> list[dict]:
    return container.registrar_for(credentials).list_subscriptions()


@maintenance_router.post("/admin/clear-session")
def clear_session(
    shop: Annotated[str, Query(min_length=1)], container: ContainerDep
) -> dict:
    deleted = container.sessions.delete_for_shop(shop)
    logger.info(f"[Sessions] Deleted {deleted} session(s) for {shop}")
    return {
        "success": True,
        "message": f"Deleted {deleted} sessions for {shop}",
        "nextStep": "Now reinstall the app from Shopify Admin",
    }


def create_app(container: Container) -> FastAPI:
    app = FastAPI(title="Saddle Serials")
    app.state.container = container
    app.include_router(admin_router)
    app.include_router(webhook_router)
    app.include_router(maintenance_router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app

"""
Shopify webhook handlers for order, product and app lifecycle events.

SECURITY: Every webhook is authenticated before its body is parsed or any
datastore call is made. Shopify signs webhooks with the app's API secret;
the internal relay tier authenticates with the service bearer secret.

Check order: headers -> body -> authentication -> JSON -> tenant -> process.

Documentation: https://shopify.dev/docs/apps/webhooks/configuration/https
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from src.config.app_config import get_app_config
from src.database.session import get_data_store
from src.platform.webhook_verification import (
    AUTH_METHOD_SERVICE_BEARER,
    AUTHORIZATION_HEADER,
    HMAC_HEADER,
    SHOP_DOMAIN_HEADER,
    TOPIC_HEADER,
    WEBHOOK_ID_HEADER,
    WebhookAuthenticationError,
    WebhookAuthenticator,
)
from src.repositories.data_store import DataStore, DataStoreError
from src.services.relay_forwarder import (
    RelayResult,
    get_relay_forwarder,
    is_forward_only,
)
from src.services.tenant_resolver import TenantResolver, normalize_shop_domain
from src.services.webhook_processor import (
    TOPIC_APP_UNINSTALLED,
    TOPIC_ORDERS_CREATE,
    TOPIC_ORDERS_UPDATED,
    TOPIC_PRODUCTS_CREATE,
    TOPIC_PRODUCTS_UPDATE,
    PayloadError,
    WebhookProcessor,
    normalize_topic,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/shopify", tags=["webhooks"])

ORDER_TOPICS = (TOPIC_ORDERS_CREATE, TOPIC_ORDERS_UPDATED)
PRODUCT_TOPICS = (TOPIC_PRODUCTS_CREATE, TOPIC_PRODUCTS_UPDATE)
UNINSTALL_TOPICS = (TOPIC_APP_UNINSTALLED,)


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    message: str = "Webhook processed"
    topic: Optional[str] = None


@dataclass
class VerifiedWebhook:
    """An authenticated webhook with its raw and parsed body."""
    body: bytes
    payload: Dict[str, Any]
    topic: str
    shop_domain: str
    auth_method: str
    webhook_id: Optional[str] = None


async def get_verified_webhook(request: Request) -> VerifiedWebhook:
    """
    Read, authenticate and parse an inbound webhook.

    The raw body is read once and verified before it is parsed; the same
    bytes are what the relay forwards.

    Raises:
        HTTPException: 400 for missing headers, empty or non-JSON body;
            401 for failed authentication
    """
    topic = request.headers.get(TOPIC_HEADER)
    shop_domain = request.headers.get(SHOP_DOMAIN_HEADER)
    if not topic or not shop_domain:
        logger.warning("Missing topic or shop domain header in webhook", extra={
            "has_topic": bool(topic),
            "has_shop_domain": bool(shop_domain)
        })
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required Shopify headers"
        )

    body = await request.body()
    if not body.strip():
        logger.warning("Empty webhook body", extra={"shop_domain": shop_domain, "topic": topic})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Empty body"
        )

    config = get_app_config()
    authenticator = WebhookAuthenticator(
        api_secret=config.shopify_api_secret,
        service_secret=config.internal_service_secret
    )
    try:
        auth_method = authenticator.authenticate(
            body,
            request.headers.get(HMAC_HEADER),
            request.headers.get(AUTHORIZATION_HEADER)
        )
    except WebhookAuthenticationError as e:
        logger.warning("Webhook authentication failed", extra={
            "shop_domain": shop_domain,
            "topic": topic,
            "reason": str(e)
        })
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Invalid JSON in webhook body", extra={"shop_domain": shop_domain})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON body"
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body must be a JSON object"
        )

    return VerifiedWebhook(
        body=body,
        payload=payload,
        topic=normalize_topic(topic),
        shop_domain=normalize_shop_domain(shop_domain),
        auth_method=auth_method,
        webhook_id=request.headers.get(WEBHOOK_ID_HEADER)
    )


async def _relay(webhook: VerifiedWebhook) -> Tuple[Optional[RelayResult], bool]:
    """
    Forward the webhook when a relay is configured.

    Events that arrived over the service bearer were already relayed and
    are never forwarded again.

    Returns:
        (relay result or None, whether the relay runs in forward-only mode)
    """
    config = get_app_config()
    forwarder = get_relay_forwarder(config)
    if forwarder is None or webhook.auth_method == AUTH_METHOD_SERVICE_BEARER:
        return None, False

    result = await forwarder.forward(webhook.body, webhook.topic, webhook.shop_domain)
    return result, is_forward_only(config)


async def process_verified_webhook(
    webhook: VerifiedWebhook,
    data_store: DataStore,
    handled_topics: Optional[Tuple[str, ...]] = None
) -> WebhookResponse:
    """
    Resolve the tenant and apply the webhook.

    Raises:
        HTTPException: 400 for malformed payloads, 404 for unknown tenants,
            500 for datastore faults that no relay absorbed
    """
    topic = webhook.topic
    log_context = {
        "topic": topic,
        "shop_domain": webhook.shop_domain,
        "webhook_id": webhook.webhook_id,
        "auth_method": webhook.auth_method
    }
    logger.info("Shopify webhook received", extra=log_context)

    if handled_topics is not None and topic not in handled_topics:
        logger.info("Webhook topic not handled by this route", extra=log_context)
        return WebhookResponse(message=f"Topic {topic} not handled", topic=topic)

    relay_result = None
    try:
        store = TenantResolver(data_store).resolve(webhook.shop_domain)
        if store is None:
            if topic == TOPIC_APP_UNINSTALLED:
                logger.info("Uninstall for unknown shop acknowledged", extra=log_context)
                return WebhookResponse(message="Store not found", topic=topic)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Store not found"
            )

        relay_result, forward_only = await _relay(webhook)
        if forward_only:
            message = "Webhook forwarded" if relay_result.forwarded else "Webhook accepted, relay failed"
            return WebhookResponse(message=message, topic=topic)

        result = await WebhookProcessor(data_store).process(
            topic, webhook.shop_domain, store, webhook.payload
        )
    except PayloadError as e:
        logger.warning("Malformed webhook payload", extra={**log_context, "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except DataStoreError as e:
        logger.error("Webhook processing failed", extra={**log_context, "error": str(e)}, exc_info=True)
        if relay_result is not None and relay_result.forwarded:
            return WebhookResponse(message="Webhook forwarded, local write failed", topic=topic)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed"
        )

    return WebhookResponse(message=result.message, topic=topic)


@router.post("/orders", response_model=WebhookResponse)
async def handle_orders_webhook(
    webhook: VerifiedWebhook = Depends(get_verified_webhook),
    data_store: DataStore = Depends(get_data_store)
):
    """Handle orders/create and orders/updated."""
    return await process_verified_webhook(webhook, data_store, ORDER_TOPICS)


@router.post("/products", response_model=WebhookResponse)
async def handle_products_webhook(
    webhook: VerifiedWebhook = Depends(get_verified_webhook),
    data_store: DataStore = Depends(get_data_store)
):
    """Handle products/create and products/update."""
    return await process_verified_webhook(webhook, data_store, PRODUCT_TOPICS)


@router.post("/app-uninstalled", response_model=WebhookResponse)
async def handle_app_uninstalled_webhook(
    webhook: VerifiedWebhook = Depends(get_verified_webhook),
    data_store: DataStore = Depends(get_data_store)
):
    """
    Handle app/uninstalled.

    Credentials are revoked; the store row and captured data are kept.
    """
    return await process_verified_webhook(webhook, data_store, UNINSTALL_TOPICS)


@router.post("", response_model=WebhookResponse)
async def handle_webhook(
    webhook: VerifiedWebhook = Depends(get_verified_webhook),
    data_store: DataStore = Depends(get_data_store)
):
    """Handle any topic, routed by the X-Shopify-Topic header."""
    return await process_verified_webhook(webhook, data_store)

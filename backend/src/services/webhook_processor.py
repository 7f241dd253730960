"""
Shopify webhook processor: normalizes order/product/app events into rows.

Processes verified webhooks with:
- Per-topic handlers, each in its own transaction scope
- Research-mode gating for product capture
- Existence checks before product updates
- Duplicate-safe order creation keyed on (store, Shopify order id)

Handlers return a WebhookProcessingResult; only datastore faults raise
(DataStoreError), and the caller decides how to answer Shopify.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.models.store import Store
from src.repositories.data_store import (
    DataStore,
    DuplicateRecordError,
    OrderRecord,
    ProductRecord,
)

logger = logging.getLogger(__name__)

# Webhook topics we handle
TOPIC_ORDERS_CREATE = "orders/create"
TOPIC_ORDERS_UPDATED = "orders/updated"
TOPIC_PRODUCTS_CREATE = "products/create"
TOPIC_PRODUCTS_UPDATE = "products/update"
TOPIC_APP_UNINSTALLED = "app/uninstalled"


def normalize_topic(topic: Optional[str]) -> str:
    """
    Normalize a webhook topic to Shopify's REST form.

    "ORDERS_CREATE" (GraphQL enum style) and "orders/create" are equivalent.
    """
    if not topic:
        return ""
    topic = topic.strip()
    if "/" in topic:
        return topic.lower()
    resource, _, action = topic.lower().partition("_")
    return f"{resource}/{action}" if action else resource


class PayloadError(ValueError):
    """Raised when a webhook payload lacks a field a handler requires."""
    pass


def _required(payload: Dict[str, Any], field: str) -> Any:
    value = payload.get(field)
    if value is None or value == "":
        raise PayloadError(f"Webhook payload missing '{field}'")
    return value


def product_record_from_payload(payload: Dict[str, Any]) -> ProductRecord:
    """Extract the captured product fields from a products/* payload."""
    image = payload.get("image") or {}
    return ProductRecord(
        shopify_id=str(_required(payload, "id")),
        title=payload.get("title") or "",
        handle=payload.get("handle"),
        image_url=image.get("src") if isinstance(image, dict) else None,
    )


def split_created_at(created_at: str) -> tuple[str, str]:
    """
    Split an ISO-8601 timestamp into UTC ("YYYY-MM-DD", "HH:MM").

    "2024-01-15T14:30:00Z" -> ("2024-01-15", "14:30")
    """
    try:
        parsed = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise PayloadError(f"Invalid created_at timestamp: {created_at!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%d"), parsed.strftime("%H:%M")


def order_record_from_payload(payload: Dict[str, Any]) -> OrderRecord:
    """
    Extract order fields from an orders/* payload.

    Customer details prefer the customer object, then fall back to the
    top-level email and the billing address names.
    """
    customer = payload.get("customer")
    if not isinstance(customer, dict):
        customer = {}
    billing_address = payload.get("billing_address")
    if not isinstance(billing_address, dict):
        billing_address = {}
    order_date, order_time = split_created_at(_required(payload, "created_at"))

    return OrderRecord(
        shopify_id=str(_required(payload, "id")),
        order_number=str(_required(payload, "order_number")),
        customer_email=customer.get("email") or payload.get("email"),
        customer_first_name=customer.get("first_name") or billing_address.get("first_name"),
        customer_last_name=customer.get("last_name") or billing_address.get("last_name"),
        order_date=order_date,
        order_time=order_time,
    )


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    topic: str
    record_id: Optional[str] = None
    skipped_reason: Optional[str] = None


class WebhookProcessor:
    """Applies verified Shopify webhooks to the datastore."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    async def process(
        self,
        topic: str,
        shop_domain: str,
        store: Store,
        payload: Dict[str, Any]
    ) -> WebhookProcessingResult:
        """
        Dispatch a webhook to its topic handler.

        Unrecognized topics are acknowledged without any write.

        Raises:
            PayloadError: If a handled topic's payload is malformed
            DataStoreError: If a write fails
        """
        topic = normalize_topic(topic)

        if topic == TOPIC_ORDERS_CREATE:
            return self.handle_order_created(store, payload)
        if topic == TOPIC_ORDERS_UPDATED:
            return self.handle_order_updated(store, payload)
        if topic == TOPIC_PRODUCTS_CREATE:
            return self.handle_product_created(store, payload)
        if topic == TOPIC_PRODUCTS_UPDATE:
            return self.handle_product_updated(store, payload)
        if topic == TOPIC_APP_UNINSTALLED:
            return self.handle_app_uninstalled(shop_domain, store)

        logger.info("Unhandled webhook topic", extra={
            "topic": topic,
            "shop_domain": shop_domain
        })
        return WebhookProcessingResult(
            processed=False,
            message=f"Topic {topic} not handled",
            topic=topic,
            skipped_reason="unhandled_topic"
        )

    def handle_order_created(self, store: Store, payload: Dict[str, Any]) -> WebhookProcessingResult:
        record = order_record_from_payload(payload)

        existing = self.data_store.find_order(store.id, record.shopify_id)
        if existing is not None:
            logger.info("Duplicate order webhook skipped", extra={
                "store_pk": store.id,
                "shopify_order_id": record.shopify_id
            })
            return WebhookProcessingResult(
                processed=False,
                message="Order already recorded",
                topic=TOPIC_ORDERS_CREATE,
                record_id=existing.id,
                skipped_reason="duplicate"
            )

        try:
            order, shipment = self.data_store.create_order_with_shipment(store, record)
        except DuplicateRecordError:
            # Concurrent delivery won the insert
            logger.info("Duplicate order insert rejected by unique constraint", extra={
                "store_pk": store.id,
                "shopify_order_id": record.shopify_id
            })
            return WebhookProcessingResult(
                processed=False,
                message="Order already recorded",
                topic=TOPIC_ORDERS_CREATE,
                skipped_reason="duplicate"
            )

        logger.info("Order created", extra={
            "store_pk": store.id,
            "order_pk": order.id,
            "shipment_pk": shipment.id,
            "shopify_order_id": record.shopify_id
        })
        return WebhookProcessingResult(
            processed=True,
            message="Order created",
            topic=TOPIC_ORDERS_CREATE,
            record_id=order.id
        )

    def handle_order_updated(self, store: Store, payload: Dict[str, Any]) -> WebhookProcessingResult:
        # Accepted and logged only; order updates are not applied
        logger.info("Order updated webhook received", extra={
            "store_pk": store.id,
            "shopify_order_id": payload.get("id")
        })
        return WebhookProcessingResult(
            processed=False,
            message="Order update acknowledged",
            topic=TOPIC_ORDERS_UPDATED,
            skipped_reason="not_applied"
        )

    def handle_product_created(self, store: Store, payload: Dict[str, Any]) -> WebhookProcessingResult:
        if not store.research_mode_enabled:
            logger.info("Research mode disabled, product not captured", extra={
                "store_pk": store.id,
                "shopify_product_id": payload.get("id")
            })
            return WebhookProcessingResult(
                processed=False,
                message="Research mode disabled",
                topic=TOPIC_PRODUCTS_CREATE,
                skipped_reason="research_mode_disabled"
            )

        record = product_record_from_payload(payload)
        try:
            product = self.data_store.create_product(store, record)
        except DuplicateRecordError:
            logger.info("Duplicate product webhook skipped", extra={
                "store_pk": store.id,
                "shopify_product_id": record.shopify_id
            })
            return WebhookProcessingResult(
                processed=False,
                message="Product already captured",
                topic=TOPIC_PRODUCTS_CREATE,
                skipped_reason="duplicate"
            )

        logger.info("Product captured", extra={
            "store_pk": store.id,
            "product_pk": product.id,
            "shopify_product_id": record.shopify_id
        })
        return WebhookProcessingResult(
            processed=True,
            message="Product created",
            topic=TOPIC_PRODUCTS_CREATE,
            record_id=product.id
        )

    def handle_product_updated(self, store: Store, payload: Dict[str, Any]) -> WebhookProcessingResult:
        record = product_record_from_payload(payload)

        product = self.data_store.find_product(store.id, record.shopify_id)
        if product is None:
            # Products created before research mode was enabled are never captured
            logger.info("Product not captured, skipping update", extra={
                "store_pk": store.id,
                "shopify_product_id": record.shopify_id
            })
            return WebhookProcessingResult(
                processed=False,
                message="Product not tracked",
                topic=TOPIC_PRODUCTS_UPDATE,
                skipped_reason="not_found"
            )

        self.data_store.update_product(product, record)
        logger.info("Product updated", extra={
            "store_pk": store.id,
            "product_pk": product.id,
            "shopify_product_id": record.shopify_id
        })
        return WebhookProcessingResult(
            processed=True,
            message="Product updated",
            topic=TOPIC_PRODUCTS_UPDATE,
            record_id=product.id
        )

    def handle_app_uninstalled(self, shop_domain: str, store: Store) -> WebhookProcessingResult:
        """
        Revoke the store's credentials. The store row and captured data stay.

        Shopify may deliver this more than once; a second delivery finds the
        token already cleared and is acknowledged without a write.
        """
        credential = self.data_store.get_credentials(store.id)
        if credential is None or credential.is_revoked:
            logger.info("No active credentials for uninstalled shop", extra={
                "shop_domain": shop_domain,
                "store_pk": store.id
            })
            return WebhookProcessingResult(
                processed=False,
                message="No active credentials",
                topic=TOPIC_APP_UNINSTALLED,
                skipped_reason="already_revoked"
            )

        self.data_store.revoke_credentials(store.id)
        logger.info("Store credentials revoked after uninstall", extra={
            "shop_domain": shop_domain,
            "store_pk": store.id
        })
        return WebhookProcessingResult(
            processed=True,
            message="App uninstalled processed",
            topic=TOPIC_APP_UNINSTALLED,
            record_id=store.id
        )

"""
Database models for stores, credentials, and captured Shopify records.

Importing this package registers every table on src.db_base.Base.
"""

from src.models.base import TimestampMixin
from src.models.store import Store, derive_shop_id
from src.models.store_credential import StoreCredential
from src.models.product_research import ProductResearch, DEFAULT_PRODUCT_STATUS
from src.models.order import (
    Order,
    OrderShipment,
    DEFAULT_ORDER_STATUS,
    DEFAULT_SHIPMENT_STATUS,
)
from src.models.oauth_state import OAuthState, OAUTH_STATE_TTL

__all__ = [
    "TimestampMixin",
    "Store",
    "derive_shop_id",
    "StoreCredential",
    "ProductResearch",
    "DEFAULT_PRODUCT_STATUS",
    "Order",
    "OrderShipment",
    "DEFAULT_ORDER_STATUS",
    "DEFAULT_SHIPMENT_STATUS",
    "OAuthState",
    "OAUTH_STATE_TTL",
]

"""
Tenant resolution: Shopify shop domain -> Store record.

The short shop identifier is the substring before the first "." of the
domain. Lookup is an exact match on Store.store_id; uniqueness is
enforced by the database.

An unknown shop is a normal outcome (None), not an error. Webhook
routes acknowledge it; read API routes reject it.
"""

import logging
from typing import Optional

from src.models.store import Store, derive_shop_id
from src.repositories.data_store import DataStore

logger = logging.getLogger(__name__)


def normalize_shop_domain(shop_domain: str) -> str:
    """Strip scheme, trailing slash and case from a shop domain."""
    return shop_domain.replace("https://", "").replace("http://", "").rstrip("/").strip().lower()


class TenantResolver:
    """Maps shop domains to stores through a DataStore."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def resolve(self, shop_domain: str) -> Optional[Store]:
        """
        Resolve a shop domain to its store.

        Args:
            shop_domain: Full shop domain (e.g., "mystore.myshopify.com")

        Returns:
            The matching Store, or None if no store is registered
        """
        shop_id = derive_shop_id(normalize_shop_domain(shop_domain))
        if not shop_id:
            return None

        store = self.data_store.get_store_by_shop_id(shop_id)
        if store is None:
            logger.warning("Store not found for shop", extra={
                "shop_domain": shop_domain,
                "shop_id": shop_id
            })
        return store

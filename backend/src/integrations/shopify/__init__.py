"""
Shopify integration module.
"""

from src.integrations.shopify.admin_client import ShopifyAdminClient, ShopifyAPIError

__all__ = ["ShopifyAdminClient", "ShopifyAPIError"]

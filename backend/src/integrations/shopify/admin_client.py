"""
Shopify Admin GraphQL API client.

Used with the decrypted token of a store's offline session to query the
shop on behalf of the dashboard.

Documentation: https://shopify.dev/docs/api/admin-graphql
"""

import logging
import os
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-04")

SHOP_OVERVIEW_QUERY = """
query {
  shop {
    name
    email
  }
  products(first: 3) {
    edges {
      node {
        id
        title
      }
    }
  }
}
"""


class ShopifyAPIError(Exception):
    """Error communicating with the Shopify Admin API."""
    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ShopifyAdminClient:
    """
    Client for Shopify Admin GraphQL API calls for one shop.

    SECURITY: access_token is the decrypted offline token; never log it.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not shop_domain:
            raise ValueError("shop_domain is required")
        if not access_token:
            raise ValueError("access_token is required")

        self.shop_domain = shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.graphql_url = f"https://{self.shop_domain}/admin/api/{SHOPIFY_API_VERSION}/graphql.json"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=10.0),
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token
            },
            transport=transport
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def execute(self, query: str, variables: Optional[dict] = None) -> dict:
        """
        Execute a GraphQL query against the Admin API.

        Returns:
            The full GraphQL response body

        Raises:
            ShopifyAPIError: If the request fails or returns a non-2xx status
        """
        payload = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self._client.post(self.graphql_url, json=payload)
        except httpx.RequestError as e:
            logger.error("Shopify API request error", extra={
                "shop_domain": self.shop_domain,
                "error": str(e)
            })
            raise ShopifyAPIError(f"Request to Shopify failed: {e}")

        if response.status_code == 401:
            logger.error("Shopify API authentication failed", extra={
                "shop_domain": self.shop_domain
            })
            raise ShopifyAPIError(
                "Authentication failed - access token may be invalid or revoked",
                status_code=401
            )

        if response.status_code == 429:
            logger.warning("Shopify API rate limited", extra={
                "shop_domain": self.shop_domain
            })
            raise ShopifyAPIError("Rate limited - please retry after a delay", status_code=429)

        if response.status_code >= 400:
            logger.error("Shopify API error", extra={
                "shop_domain": self.shop_domain,
                "status_code": response.status_code,
                "response_text": response.text[:500]
            })
            raise ShopifyAPIError(
                f"Shopify API error: {response.status_code}",
                status_code=response.status_code,
                details=response.text[:500]
            )

        return response.json()

    async def get_shop_overview(self) -> dict:
        """Fetch shop name/email and the first three products."""
        return await self.execute(SHOP_OVERVIEW_QUERY)

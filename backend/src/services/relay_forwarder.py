"""
Relay forwarder: re-posts verified webhooks to a second processing tier.

The downstream tier trusts the forwarded request through the internal
service bearer secret instead of re-deriving Shopify's signature. The
body is forwarded byte-for-byte with the original topic and shop headers.

Downstream failures are logged and reported as a failed RelayResult; they
are never raised to the route, so Shopify still receives a 200.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from src.config.app_config import AppConfig, RELAY_MODE_FORWARD
from src.platform.webhook_verification import (
    AUTHORIZATION_HEADER,
    SHOP_DOMAIN_HEADER,
    TOPIC_HEADER,
)

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Raised when the relay is misconfigured."""
    pass


@dataclass
class RelayResult:
    """Outcome of one forwarding attempt."""
    forwarded: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class RelayForwarder:
    """Forwards raw webhook bodies to WEBHOOK_RELAY_URL."""

    def __init__(
        self,
        relay_url: str,
        service_secret: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not relay_url:
            raise RelayError("WEBHOOK_RELAY_URL is not configured")
        if not service_secret:
            raise RelayError("INTERNAL_SERVICE_SECRET is required to forward webhooks")

        self.relay_url = relay_url
        self._service_secret = service_secret
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "RelayForwarder":
        return cls(
            relay_url=config.relay_url,
            service_secret=config.internal_service_secret,
            timeout_seconds=config.relay_timeout_seconds,
            transport=transport,
        )

    def _headers(self, topic: str, shop_domain: str) -> dict:
        return {
            "Content-Type": "application/json",
            TOPIC_HEADER: topic,
            SHOP_DOMAIN_HEADER: shop_domain,
            AUTHORIZATION_HEADER: f"Bearer {self._service_secret}",
        }

    async def forward(self, body: bytes, topic: str, shop_domain: str) -> RelayResult:
        """
        POST the unmodified body to the relay endpoint.

        Returns:
            RelayResult; forwarded is True only for a 2xx response
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport
            ) as client:
                response = await client.post(
                    self.relay_url,
                    content=body,
                    headers=self._headers(topic, shop_domain)
                )
        except httpx.HTTPError as e:
            logger.error("Webhook relay request failed", extra={
                "topic": topic,
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return RelayResult(forwarded=False, error=str(e))

        if not response.is_success:
            logger.error("Webhook relay returned an error", extra={
                "topic": topic,
                "shop_domain": shop_domain,
                "status_code": response.status_code,
                "response_text": response.text[:500]
            })
            return RelayResult(
                forwarded=False,
                status_code=response.status_code,
                error=f"Relay responded {response.status_code}"
            )

        logger.info("Webhook forwarded to relay", extra={
            "topic": topic,
            "shop_domain": shop_domain,
            "status_code": response.status_code
        })
        return RelayResult(forwarded=True, status_code=response.status_code)


def get_relay_forwarder(config: AppConfig) -> Optional[RelayForwarder]:
    """Build the forwarder for the configured relay mode, or None when off."""
    if not config.relay_enabled:
        return None
    return RelayForwarder.from_config(config)


def is_forward_only(config: AppConfig) -> bool:
    return config.relay_enabled and config.relay_mode == RELAY_MODE_FORWARD

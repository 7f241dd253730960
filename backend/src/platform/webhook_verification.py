"""
Shopify webhook authentication.

Shopify signs each webhook with HMAC-SHA256 over the raw request body,
keyed with the app's API secret, and sends the base64 digest in the
X-Shopify-Hmac-Sha256 header.

Internal services that relay an already-verified webhook authenticate
instead with "Authorization: Bearer <INTERNAL_SERVICE_SECRET>". The
bearer check runs first and, when it matches, no HMAC is computed.

SECURITY:
- The body MUST be the exact bytes received, before any JSON parsing
- A missing secret or header is a rejection, never a skipped check
- All comparisons are constant-time

Documentation: https://shopify.dev/docs/apps/webhooks/configuration/https
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"
AUTHORIZATION_HEADER = "Authorization"

AUTH_METHOD_HMAC = "hmac"
AUTH_METHOD_SERVICE_BEARER = "service_bearer"


class WebhookAuthenticationError(Exception):
    """Raised when a webhook carries neither a valid signature nor a trusted bearer."""
    pass


def compute_webhook_hmac(data: bytes, secret: str) -> str:
    """Compute the base64 HMAC-SHA256 digest Shopify sends for a body."""
    digest = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_shopify_webhook(
    data: bytes,
    hmac_header: Optional[str],
    api_secret: Optional[str]
) -> bool:
    """
    Verify Shopify webhook HMAC signature.

    Args:
        data: Raw request body bytes
        hmac_header: X-Shopify-Hmac-Sha256 header value
        api_secret: Shopify app API secret

    Returns:
        True if signature is valid, False otherwise (including missing inputs)
    """
    if not hmac_header or not api_secret:
        return False

    computed_digest = compute_webhook_hmac(data, api_secret)
    return hmac.compare_digest(
        computed_digest.encode("utf-8"),
        hmac_header.strip().encode("utf-8")
    )


def is_trusted_service_request(
    authorization_header: Optional[str],
    service_secret: Optional[str]
) -> bool:
    """
    Check the internal bearer credential used by the relay tier.

    Matches only "Bearer <secret>" exactly; an unconfigured secret never matches.
    """
    if not authorization_header or not service_secret:
        return False

    expected = f"Bearer {service_secret}"
    return hmac.compare_digest(
        authorization_header.encode("utf-8"),
        expected.encode("utf-8")
    )


@dataclass(frozen=True)
class WebhookAuthenticator:
    """
    Authenticates inbound webhooks with the bearer escape hatch first,
    then the Shopify HMAC signature.
    """
    api_secret: Optional[str]
    service_secret: Optional[str] = None

    def authenticate(
        self,
        body: bytes,
        hmac_header: Optional[str],
        authorization_header: Optional[str] = None
    ) -> str:
        """
        Authenticate a webhook request.

        Returns:
            The method that succeeded (AUTH_METHOD_SERVICE_BEARER or AUTH_METHOD_HMAC)

        Raises:
            WebhookAuthenticationError: If neither method succeeds
        """
        if is_trusted_service_request(authorization_header, self.service_secret):
            logger.info("Webhook authenticated via internal service bearer")
            return AUTH_METHOD_SERVICE_BEARER

        if not self.api_secret:
            logger.error("SHOPIFY_API_SECRET not configured; rejecting webhook")
            raise WebhookAuthenticationError("Webhook verification not configured")

        if not hmac_header:
            logger.warning("Missing HMAC header in webhook")
            raise WebhookAuthenticationError("Missing HMAC signature")

        if not verify_shopify_webhook(body, hmac_header, self.api_secret):
            logger.warning("Invalid webhook HMAC")
            raise WebhookAuthenticationError("Invalid HMAC signature")

        return AUTH_METHOD_HMAC

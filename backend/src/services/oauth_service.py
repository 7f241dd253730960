"""
OAuth service for the Shopify app installation flow.

Handles:
- Shop domain validation
- OAuth state management (CSRF protection)
- Callback HMAC verification
- Token exchange for an offline access token
- Session and store persistence

Persistence failures after a verified handshake are logged and reported
on the OAuthCompletion; they never fail the install flow.
"""

import base64
import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx

from src.config.app_config import AppConfig, get_app_config
from src.models.oauth_state import OAUTH_STATE_TTL, OAuthState
from src.models.store import Store, derive_shop_id
from src.platform.secrets import EncryptionError, encrypt_secret
from src.repositories.data_store import DataStore, DataStoreError
from src.services.session_storage import (
    SessionStorage,
    ShopifySession,
    offline_session_id,
)
from src.services.tenant_resolver import normalize_shop_domain

logger = logging.getLogger(__name__)

# Shopify shop domain validation regex
SHOP_DOMAIN_REGEX = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


class OAuthError(Exception):
    """Base exception for OAuth errors."""
    pass


class InvalidShopDomainError(OAuthError):
    """Raised when shop domain format is invalid."""
    pass


class InvalidStateError(OAuthError):
    """Raised when OAuth state is invalid, expired, or already used."""
    pass


class HMACVerificationError(OAuthError):
    """Raised when HMAC signature verification fails."""
    pass


class TokenExchangeError(OAuthError):
    """Raised when token exchange with Shopify fails."""
    pass


@dataclass
class OAuthCompletion:
    """Outcome of a verified OAuth callback."""
    shop_domain: str
    store: Optional[Store]
    persisted: bool


class OAuthService:
    """Service for handling Shopify OAuth installation flow."""

    def __init__(
        self,
        data_store: DataStore,
        config: Optional[AppConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        config = config or get_app_config()
        self.api_key = config.shopify_api_key
        self.api_secret = config.shopify_api_secret
        self.app_url = config.app_url
        self.scopes = config.shopify_scopes

        if not self.api_key:
            raise ValueError("SHOPIFY_API_KEY environment variable is required")
        if not self.api_secret:
            raise ValueError("SHOPIFY_API_SECRET environment variable is required")
        if not self.app_url:
            raise ValueError("APP_URL environment variable is required")

        self.data_store = data_store
        self.session_storage = SessionStorage(data_store)
        self._transport = transport

    def validate_shop_domain(self, shop: str) -> bool:
        """
        Validate Shopify shop domain format.

        Args:
            shop: Shop domain (e.g., "mystore.myshopify.com")

        Returns:
            True if valid, False otherwise
        """
        if not shop:
            return False
        return bool(SHOP_DOMAIN_REGEX.match(normalize_shop_domain(shop)))

    def create_authorization_url(self, shop: str, redirect_uri: Optional[str] = None) -> str:
        """
        Create the Shopify authorization URL and persist its state.

        Raises:
            InvalidShopDomainError: If shop domain is invalid
            DataStoreError: If the state cannot be saved
        """
        if not self.validate_shop_domain(shop):
            raise InvalidShopDomainError(f"Invalid shop domain: {shop}")

        shop = normalize_shop_domain(shop)
        state = secrets.token_urlsafe(32)
        nonce = secrets.token_urlsafe(32)

        if not redirect_uri:
            redirect_uri = f"{self.app_url.rstrip('/')}/api/auth/callback"

        oauth_state = self.data_store.add_oauth_state(OAuthState(
            shop_domain=shop,
            state=state,
            nonce=nonce,
            scopes=self.scopes,
            redirect_uri=redirect_uri,
            expires_at=datetime.now(timezone.utc) + OAUTH_STATE_TTL
        ))

        logger.info("Created OAuth state", extra={
            "shop_domain": shop,
            "state_id": oauth_state.id
        })

        params = {
            "client_id": self.api_key,
            "scope": self.scopes,
            "redirect_uri": redirect_uri,
            "state": state,
            "nonce": nonce
        }
        return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"

    def verify_callback_hmac(self, params: dict) -> bool:
        """
        Verify the HMAC Shopify attaches to OAuth callbacks.

        The digest covers every other query parameter, sorted by key and
        joined as "k=v&k=v".
        """
        hmac_value = params.get("hmac")
        if not hmac_value:
            return False

        signed = {k: v for k, v in params.items() if k not in ("hmac", "signature")}
        query_string = "&".join(f"{k}={v}" for k, v in sorted(signed.items()))

        computed_hmac = hmac.new(
            self.api_secret.encode("utf-8"),
            query_string.encode("utf-8"),
            hashlib.sha256
        )
        computed_digest = base64.b64encode(computed_hmac.digest()).decode("utf-8")

        return hmac.compare_digest(computed_digest.encode("utf-8"), hmac_value.encode("utf-8"))

    def validate_state(self, state: str, shop: str) -> OAuthState:
        """
        Validate OAuth state exists, not expired, and not used.

        Raises:
            InvalidStateError: If state is invalid, expired, or used
        """
        oauth_state = self.data_store.find_oauth_state(state, normalize_shop_domain(shop))

        if not oauth_state:
            raise InvalidStateError("OAuth state not found")
        if oauth_state.is_expired:
            raise InvalidStateError("OAuth state has expired")
        if oauth_state.is_used:
            raise InvalidStateError("OAuth state has already been used")

        return oauth_state

    async def exchange_code_for_token(self, shop: str, code: str) -> dict:
        """
        Exchange OAuth authorization code for an offline access token.

        Raises:
            TokenExchangeError: If exchange fails
        """
        shop = normalize_shop_domain(shop)
        url = f"https://{shop}/admin/oauth/access_token"

        payload = {
            "client_id": self.api_key,
            "client_secret": self.api_secret,
            "code": code
        }

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Token exchange failed", extra={
                "shop_domain": shop,
                "status_code": e.response.status_code,
                "response_text": e.response.text[:500]
            })
            raise TokenExchangeError(f"Token exchange failed: {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error("Token exchange request error", extra={
                "shop_domain": shop,
                "error": str(e)
            })
            raise TokenExchangeError(f"Token exchange request error: {e}")

        if not token_data.get("access_token"):
            raise TokenExchangeError("Token response missing access_token")

        logger.info("Token exchange successful", extra={"shop_domain": shop})
        return token_data

    async def _persist_installation(self, shop_domain: str, token_data: dict) -> Optional[Store]:
        """Store the offline session, then register the store with its owner and expiry."""
        access_token = token_data["access_token"]
        scopes = token_data.get("scope") or self.scopes

        stored = await self.session_storage.store_session(ShopifySession(
            id=offline_session_id(shop_domain),
            shop=shop_domain,
            access_token=access_token,
            scope=scopes,
        ))
        if not stored:
            return None

        associated_user = token_data.get("associated_user") or {}
        user_id = associated_user.get("id")
        expires_in = token_data.get("expires_in")
        expires_at = (
            datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            if expires_in else None
        )

        try:
            store, _ = self.data_store.register_store(
                user_id=str(user_id) if user_id else None,
                shop_domain=shop_domain,
                shop_id=derive_shop_id(shop_domain),
                access_token_encrypted=await encrypt_secret(access_token),
                refresh_token=None,
                scopes=scopes,
                expires_at=expires_at,
            )
        except (DataStoreError, EncryptionError) as e:
            logger.error("Error registering store after OAuth", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return None
        return store

    async def complete_oauth(self, shop: str, code: str, state: str, params: dict) -> OAuthCompletion:
        """
        Complete OAuth flow: verify, exchange token, persist session and store.

        Raises:
            HMACVerificationError: If HMAC verification fails
            InvalidStateError: If state validation fails
            TokenExchangeError: If token exchange fails
            DataStoreError: If the state cannot be read or consumed
        """
        if not self.verify_callback_hmac(params):
            raise HMACVerificationError("Invalid HMAC signature")

        oauth_state = self.validate_state(state, shop)
        self.data_store.consume_oauth_state(oauth_state)

        shop_domain = normalize_shop_domain(shop)
        token_data = await self.exchange_code_for_token(shop_domain, code)

        store = await self._persist_installation(shop_domain, token_data)
        if store is None:
            logger.error("OAuth completed but installation was not persisted", extra={
                "shop_domain": shop_domain
            })
        else:
            logger.info("OAuth flow completed", extra={
                "shop_domain": shop_domain,
                "store_pk": store.id
            })

        return OAuthCompletion(shop_domain=shop_domain, store=store, persisted=store is not None)

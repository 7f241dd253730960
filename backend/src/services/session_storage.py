"""
OAuth session persistence backed by stores + store_credentials.

Only offline (shop-level) sessions are persisted. A session id has the
form "offline_<shop_domain>"; any other id (e.g. online sessions,
"<shop>_<user id>") loads as None so the caller re-authenticates.

Sessions are never stored as rows of their own: load() rebuilds one
from the Store and StoreCredential rows on every call.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from src.platform.secrets import EncryptionError, decrypt_secret, encrypt_secret
from src.repositories.data_store import DataStore, DataStoreError

logger = logging.getLogger(__name__)

OFFLINE_SESSION_PREFIX = "offline_"


def offline_session_id(shop_domain: str) -> str:
    """Build the session id of a shop's offline session."""
    return f"{OFFLINE_SESSION_PREFIX}{shop_domain}"


@dataclass
class ShopifySession:
    """An OAuth session as handed to outbound Admin API callers."""
    id: str
    shop: str
    access_token: Optional[str]
    scope: str = ""
    is_online: bool = False
    state: str = ""


class SessionStorage:
    """Stores and loads offline Shopify sessions through a DataStore."""

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    async def store_session(self, session: ShopifySession) -> bool:
        """
        Persist an offline session.

        Online sessions and sessions without an access token are accepted
        and not persisted.

        Returns:
            False if persistence failed, True otherwise
        """
        if session.is_online or not session.access_token:
            logger.debug("Session not persisted (online or tokenless)", extra={
                "shop_domain": session.shop,
                "is_online": session.is_online
            })
            return True

        try:
            access_token_encrypted = await encrypt_secret(session.access_token)
            self.data_store.save_offline_session(
                shop_domain=session.shop,
                access_token_encrypted=access_token_encrypted,
                scopes=session.scope,
            )
        except (DataStoreError, EncryptionError) as e:
            logger.error("Error storing session", extra={
                "shop_domain": session.shop,
                "error": str(e)
            })
            return False

        logger.info("Offline session stored", extra={"shop_domain": session.shop})
        return True

    async def load_session(self, session_id: str) -> Optional[ShopifySession]:
        """
        Load a session by id.

        Returns:
            The session, or None for non-offline ids, unknown shops,
            revoked credentials, or undecryptable tokens
        """
        if not session_id.startswith(OFFLINE_SESSION_PREFIX):
            return None

        shop_domain = session_id[len(OFFLINE_SESSION_PREFIX):]
        if not shop_domain:
            return None

        try:
            store = self.data_store.get_store_by_domain(shop_domain)
            if store is None:
                return None
            credential = self.data_store.get_credentials(store.id)
        except DataStoreError as e:
            logger.error("Error loading session", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return None

        if credential is None or not credential.access_token_encrypted:
            return None

        try:
            access_token = await decrypt_secret(credential.access_token_encrypted)
        except EncryptionError as e:
            logger.error("Stored access token could not be decrypted", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return None

        return ShopifySession(
            id=session_id,
            shop=store.shop_domain or shop_domain,
            access_token=access_token,
            scope=credential.scopes or store.scopes or "",
            is_online=False,
        )

    async def delete_session(self, session_id: str) -> bool:
        """Accept a delete without removing data; revocation happens on uninstall."""
        return True

    async def delete_sessions(self, session_ids: Iterable[str]) -> bool:
        return True

    async def find_sessions_by_shop(self, shop_domain: str) -> List[ShopifySession]:
        """Return the shop's offline session as a zero- or one-element list."""
        session = await self.load_session(offline_session_id(shop_domain))
        return [session] if session else []

"""
DataStore: typed persistence operations for stores, credentials, and
captured Shopify records.

Handlers depend on the DataStore interface, never on a module-level
client, so tests can substitute a double and each request gets its own
SQLAlchemy session.

Multi-row writes (Store + StoreCredential, Order + OrderShipment) run in
a single transaction: either every row is committed or none is.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.oauth_state import OAuthState
from src.models.order import (
    DEFAULT_ORDER_STATUS,
    DEFAULT_SHIPMENT_STATUS,
    Order,
    OrderShipment,
)
from src.models.product_research import DEFAULT_PRODUCT_STATUS, ProductResearch
from src.models.store import Store, derive_shop_id
from src.models.store_credential import StoreCredential

logger = logging.getLogger(__name__)


class DataStoreError(Exception):
    """Raised when the datastore rejects a read or write."""
    pass


class DuplicateRecordError(DataStoreError):
    """Raised when a write collides with an existing unique record."""
    pass


@dataclass(frozen=True)
class ProductRecord:
    """Product fields extracted from a products/* webhook payload."""
    shopify_id: str
    title: str
    handle: Optional[str]
    image_url: Optional[str]


@dataclass(frozen=True)
class OrderRecord:
    """Order fields extracted from an orders/* webhook payload."""
    shopify_id: str
    order_number: str
    customer_email: Optional[str]
    customer_first_name: Optional[str]
    customer_last_name: Optional[str]
    order_date: str
    order_time: str


class DataStore(ABC):
    """Persistence operations used by webhook, session, OAuth and read paths."""

    # Stores

    @abstractmethod
    def get_store_by_shop_id(self, shop_id: str) -> Optional[Store]:
        """Find a store by its short shop identifier."""

    @abstractmethod
    def get_store_by_domain(self, shop_domain: str) -> Optional[Store]:
        """Find a store by its full shop domain."""

    @abstractmethod
    def get_store_by_api_key(self, api_key: str) -> Optional[Store]:
        """Find a store by its dashboard API key."""

    @abstractmethod
    def get_store_by_id(self, store_pk: str) -> Optional[Store]:
        """Find a store by its internal id."""

    @abstractmethod
    def register_store(
        self,
        user_id: Optional[str],
        shop_domain: str,
        shop_id: str,
        access_token_encrypted: str,
        refresh_token: Optional[str],
        scopes: str,
        expires_at: Optional[datetime] = None
    ) -> Tuple[Store, StoreCredential]:
        """Upsert a store keyed on shop id, then its credential, in one transaction."""

    @abstractmethod
    def save_offline_session(
        self,
        shop_domain: str,
        access_token_encrypted: str,
        scopes: Optional[str]
    ) -> Store:
        """Upsert a store keyed on shop domain, then its credential, in one transaction."""

    # Credentials

    @abstractmethod
    def get_credentials(self, store_pk: str) -> Optional[StoreCredential]:
        """Get the current credential row for a store."""

    @abstractmethod
    def revoke_credentials(self, store_pk: str) -> bool:
        """Null the access token of a store's credential. Returns False if none exists."""

    # Products

    @abstractmethod
    def find_product(self, store_pk: str, shopify_id: str) -> Optional[ProductResearch]:
        """Find a captured product by (store, Shopify product id)."""

    @abstractmethod
    def create_product(self, store: Store, record: ProductRecord) -> ProductResearch:
        """Insert a captured product with the default research status."""

    @abstractmethod
    def update_product(self, product: ProductResearch, record: ProductRecord) -> ProductResearch:
        """Refresh title, handle and image of a captured product."""

    @abstractmethod
    def list_products(self, store_pk: str, limit: int, offset: int) -> List[ProductResearch]:
        """List captured products, newest finding_date first."""

    @abstractmethod
    def count_products(self, store_pk: str) -> int:
        """Count captured products for a store."""

    # Orders

    @abstractmethod
    def find_order(self, store_pk: str, shopify_id: str) -> Optional[Order]:
        """Find an order by (store, Shopify order id)."""

    @abstractmethod
    def create_order_with_shipment(
        self,
        store: Store,
        record: OrderRecord
    ) -> Tuple[Order, OrderShipment]:
        """Insert an order and its shipment in one transaction."""

    # OAuth state

    @abstractmethod
    def add_oauth_state(self, oauth_state: OAuthState) -> OAuthState:
        """Persist a new OAuth state."""

    @abstractmethod
    def find_oauth_state(self, state: str, shop_domain: str) -> Optional[OAuthState]:
        """Find an OAuth state by value and shop domain."""

    @abstractmethod
    def consume_oauth_state(self, oauth_state: OAuthState) -> None:
        """Mark an OAuth state as used."""


class SqlAlchemyDataStore(DataStore):
    """DataStore backed by one SQLAlchemy session (one per request)."""

    def __init__(self, db_session: Session):
        self.db = db_session

    @contextmanager
    def _write(self, operation: str) -> Iterator[None]:
        """Commit the enclosed writes, or roll back and raise DataStoreError."""
        try:
            yield
            self.db.commit()
        except DataStoreError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Datastore write failed",
                extra={"operation": operation, "error": str(e)},
                exc_info=True
            )
            raise DataStoreError(f"{operation} failed: {e}") from e

    def _first(self, operation: str, query):
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Datastore read failed",
                extra={"operation": operation, "error": str(e)},
                exc_info=True
            )
            raise DataStoreError(f"{operation} failed: {e}") from e

    # Stores

    def get_store_by_shop_id(self, shop_id: str) -> Optional[Store]:
        return self._first(
            "get_store_by_shop_id",
            self.db.query(Store).filter(Store.store_id == shop_id)
        )

    def get_store_by_domain(self, shop_domain: str) -> Optional[Store]:
        return self._first(
            "get_store_by_domain",
            self.db.query(Store).filter(Store.shop_domain == shop_domain)
        )

    def get_store_by_api_key(self, api_key: str) -> Optional[Store]:
        return self._first(
            "get_store_by_api_key",
            self.db.query(Store).filter(Store.api_key == api_key)
        )

    def get_store_by_id(self, store_pk: str) -> Optional[Store]:
        return self._first(
            "get_store_by_id",
            self.db.query(Store).filter(Store.id == store_pk)
        )

    def _upsert_credential(
        self,
        store: Store,
        access_token_encrypted: str,
        refresh_token: Optional[str],
        scopes: Optional[str],
        expires_at: Optional[datetime]
    ) -> StoreCredential:
        credential = (
            self.db.query(StoreCredential)
            .filter(StoreCredential.store_id == store.id)
            .first()
        )
        if credential is None:
            credential = StoreCredential(store_id=store.id)
            self.db.add(credential)

        credential.access_token_encrypted = access_token_encrypted
        credential.refresh_token = refresh_token
        credential.scopes = scopes
        credential.expires_at = expires_at
        self.db.flush()
        return credential

    def register_store(
        self,
        user_id: Optional[str],
        shop_domain: str,
        shop_id: str,
        access_token_encrypted: str,
        refresh_token: Optional[str],
        scopes: str,
        expires_at: Optional[datetime] = None
    ) -> Tuple[Store, StoreCredential]:
        with self._write("register_store"):
            store = self.db.query(Store).filter(Store.store_id == shop_id).first()
            is_new = store is None
            if is_new:
                store = Store(store_id=shop_id, name=shop_domain)
                self.db.add(store)

            store.shop_domain = shop_domain
            store.scopes = scopes
            # Offline installs carry no user; keep an existing link
            if user_id:
                store.user_id = user_id
            self.db.flush()

            credential = self._upsert_credential(
                store, access_token_encrypted, refresh_token, scopes, expires_at
            )

        logger.info("Store registered", extra={
            "store_pk": store.id,
            "shop_id": shop_id,
            "is_new": is_new
        })
        return store, credential

    def save_offline_session(
        self,
        shop_domain: str,
        access_token_encrypted: str,
        scopes: Optional[str]
    ) -> Store:
        with self._write("save_offline_session"):
            store = self.db.query(Store).filter(Store.shop_domain == shop_domain).first()
            if store is None:
                shop_id = derive_shop_id(shop_domain)
                # A store created by the OAuth callback may exist without a domain
                store = self.db.query(Store).filter(Store.store_id == shop_id).first()
                if store is None:
                    store = Store(store_id=shop_id, name=shop_id)
                    self.db.add(store)
                store.shop_domain = shop_domain

            if not store.name:
                store.name = derive_shop_id(shop_domain)
            store.scopes = scopes
            self.db.flush()

            self._upsert_credential(store, access_token_encrypted, None, scopes, None)

        return store

    # Credentials

    def get_credentials(self, store_pk: str) -> Optional[StoreCredential]:
        return self._first(
            "get_credentials",
            self.db.query(StoreCredential).filter(StoreCredential.store_id == store_pk)
        )

    def revoke_credentials(self, store_pk: str) -> bool:
        with self._write("revoke_credentials"):
            credential = (
                self.db.query(StoreCredential)
                .filter(StoreCredential.store_id == store_pk)
                .first()
            )
            if credential is None:
                return False
            credential.access_token_encrypted = None
            credential.refresh_token = None
            credential.expires_at = None
        return True

    # Products

    def find_product(self, store_pk: str, shopify_id: str) -> Optional[ProductResearch]:
        return self._first(
            "find_product",
            self.db.query(ProductResearch).filter(
                ProductResearch.store_id == store_pk,
                ProductResearch.shopify_id == shopify_id
            )
        )

    def create_product(self, store: Store, record: ProductRecord) -> ProductResearch:
        product = ProductResearch(
            store_id=store.id,
            user_id=store.user_id,
            product_name=record.title,
            shopify_id=record.shopify_id,
            handle=record.handle,
            status=DEFAULT_PRODUCT_STATUS,
            finding_date=datetime.now(timezone.utc).date(),
            main_image_url=record.image_url,
        )
        with self._write("create_product"):
            self.db.add(product)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise DuplicateRecordError(
                    f"Product {record.shopify_id} already captured for store {store.id}"
                ) from e
        return product

    def update_product(self, product: ProductResearch, record: ProductRecord) -> ProductResearch:
        with self._write("update_product"):
            product.product_name = record.title
            product.handle = record.handle
            product.main_image_url = record.image_url
        return product

    def list_products(self, store_pk: str, limit: int, offset: int) -> List[ProductResearch]:
        try:
            return (
                self.db.query(ProductResearch)
                .filter(ProductResearch.store_id == store_pk)
                .order_by(ProductResearch.finding_date.desc(), ProductResearch.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DataStoreError(f"list_products failed: {e}") from e

    def count_products(self, store_pk: str) -> int:
        try:
            return (
                self.db.query(ProductResearch)
                .filter(ProductResearch.store_id == store_pk)
                .count()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DataStoreError(f"count_products failed: {e}") from e

    # Orders

    def find_order(self, store_pk: str, shopify_id: str) -> Optional[Order]:
        return self._first(
            "find_order",
            self.db.query(Order).filter(
                Order.store_id == store_pk,
                Order.shopify_id == shopify_id
            )
        )

    def create_order_with_shipment(
        self,
        store: Store,
        record: OrderRecord
    ) -> Tuple[Order, OrderShipment]:
        order = Order(
            store_id=store.id,
            user_id=store.user_id,
            order_number=record.order_number,
            shopify_id=record.shopify_id,
            customer_email=record.customer_email,
            customer_first_name=record.customer_first_name,
            customer_last_name=record.customer_last_name,
            order_date=record.order_date,
            order_time=record.order_time,
            internal_status=DEFAULT_ORDER_STATUS,
        )
        with self._write("create_order_with_shipment"):
            self.db.add(order)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise DuplicateRecordError(
                    f"Order {record.shopify_id} already exists for store {store.id}"
                ) from e

            shipment = OrderShipment(order_id=order.id, status=DEFAULT_SHIPMENT_STATUS)
            self.db.add(shipment)
            self.db.flush()
        return order, shipment

    # OAuth state

    def add_oauth_state(self, oauth_state: OAuthState) -> OAuthState:
        with self._write("add_oauth_state"):
            self.db.add(oauth_state)
        return oauth_state

    def find_oauth_state(self, state: str, shop_domain: str) -> Optional[OAuthState]:
        return self._first(
            "find_oauth_state",
            self.db.query(OAuthState).filter(
                OAuthState.state == state,
                OAuthState.shop_domain == shop_domain
            )
        )

    def consume_oauth_state(self, oauth_state: OAuthState) -> None:
        with self._write("consume_oauth_state"):
            oauth_state.mark_used()

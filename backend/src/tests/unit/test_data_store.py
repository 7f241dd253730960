"""
Unit tests for SqlAlchemyDataStore.

Tests cover:
- Store registration upserts keyed on shop id
- Offline session upserts keyed on shop domain
- Single-transaction order + shipment writes
- Duplicate detection through unique constraints
- Credential revocation
- Product listing order and pagination
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from src.models import Order, OrderShipment, ProductResearch, Store, StoreCredential
from src.repositories.data_store import (
    DataStoreError,
    DuplicateRecordError,
    OrderRecord,
    ProductRecord,
)

SHOP = "test-store.myshopify.com"


def _order_record(shopify_id="1001"):
    return OrderRecord(
        shopify_id=shopify_id,
        order_number="1001",
        customer_email="jon@example.com",
        customer_first_name="Jon",
        customer_last_name="Snow",
        order_date="2024-01-15",
        order_time="14:30",
    )


def _product_record(shopify_id="632910392", title="IPod Nano"):
    return ProductRecord(shopify_id=shopify_id, title=title, handle="ipod-nano", image_url=None)


class TestStoreLookups:

    def test_lookups(self, data_store, make_store):
        store = make_store(shop_domain=SHOP)

        assert data_store.get_store_by_shop_id("test-store").id == store.id
        assert data_store.get_store_by_domain(SHOP).id == store.id
        assert data_store.get_store_by_api_key(store.api_key).id == store.id
        assert data_store.get_store_by_id(store.id).id == store.id

    def test_misses_return_none(self, data_store):
        assert data_store.get_store_by_shop_id("nope") is None
        assert data_store.get_store_by_domain("nope.myshopify.com") is None
        assert data_store.get_store_by_api_key("nope") is None
        assert data_store.get_store_by_id("nope") is None

    def test_api_keys_are_unique_per_store(self, make_store):
        first = make_store(shop_domain="first.myshopify.com")
        second = make_store(shop_domain="second.myshopify.com")

        assert first.api_key and second.api_key
        assert first.api_key != second.api_key


class TestRegisterStore:

    def test_creates_store_and_credential(self, data_store, db_session):
        expires_at = datetime.now(timezone.utc) + timedelta(days=1)

        store, credential = data_store.register_store(
            user_id="user-1",
            shop_domain=SHOP,
            shop_id="test-store",
            access_token_encrypted="encrypted",
            refresh_token=None,
            scopes="read_products",
            expires_at=expires_at,
        )

        assert store.store_id == "test-store"
        assert store.name == SHOP
        assert store.research_mode_enabled is False
        assert credential.store_id == store.id
        assert db_session.query(StoreCredential).count() == 1

    def test_upsert_keeps_one_row_per_shop(self, data_store, db_session):
        for token in ("first", "second"):
            data_store.register_store(
                user_id=None,
                shop_domain=SHOP,
                shop_id="test-store",
                access_token_encrypted=token,
                refresh_token=None,
                scopes="read_products",
            )

        assert db_session.query(Store).count() == 1
        credential = db_session.query(StoreCredential).one()
        assert credential.access_token_encrypted == "second"

    def test_failed_credential_write_rolls_back_store(self, data_store, db_session, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(data_store, "_upsert_credential", fail)

        with pytest.raises(DataStoreError):
            data_store.register_store(
                user_id=None,
                shop_domain=SHOP,
                shop_id="test-store",
                access_token_encrypted="encrypted",
                refresh_token=None,
                scopes="read_products",
            )

        assert db_session.query(Store).count() == 0


class TestSaveOfflineSession:

    def test_creates_store_with_default_name(self, data_store, db_session):
        store = data_store.save_offline_session(SHOP, "encrypted", "read_products")

        assert store.store_id == "test-store"
        assert store.name == "test-store"
        assert store.shop_domain == SHOP
        assert data_store.get_credentials(store.id).access_token_encrypted == "encrypted"

    def test_adopts_store_registered_without_domain(self, data_store, db_session):
        pending = Store(store_id="test-store", name="Pending Store")
        db_session.add(pending)
        db_session.commit()

        store = data_store.save_offline_session(SHOP, "encrypted", "read_products")

        assert store.id == pending.id
        assert store.shop_domain == SHOP
        assert store.name == "Pending Store"
        assert db_session.query(Store).count() == 1


class TestRevokeCredentials:

    def test_nulls_token_and_expiry(self, data_store, make_store):
        store = make_store(access_token_encrypted="encrypted")

        assert data_store.revoke_credentials(store.id) is True

        credential = data_store.get_credentials(store.id)
        assert credential.access_token_encrypted is None
        assert credential.expires_at is None
        assert credential.is_revoked is True

    def test_no_credential(self, data_store, make_store):
        store = make_store()
        assert data_store.revoke_credentials(store.id) is False


class TestOrders:

    def test_order_and_shipment_created_together(self, data_store, db_session, make_store):
        store = make_store()

        order, shipment = data_store.create_order_with_shipment(store, _order_record())

        assert shipment.order_id == order.id
        assert data_store.find_order(store.id, "1001").id == order.id
        assert db_session.query(OrderShipment).count() == 1

    def test_duplicate_order_rejected(self, data_store, db_session, make_store):
        store = make_store()
        data_store.create_order_with_shipment(store, _order_record())

        with pytest.raises(DuplicateRecordError):
            data_store.create_order_with_shipment(store, _order_record())

        assert db_session.query(Order).count() == 1
        assert db_session.query(OrderShipment).count() == 1

    def test_same_order_id_in_two_stores(self, data_store, db_session, make_store):
        first = make_store(shop_domain="first.myshopify.com")
        second = make_store(shop_domain="second.myshopify.com")

        data_store.create_order_with_shipment(first, _order_record())
        data_store.create_order_with_shipment(second, _order_record())

        assert db_session.query(Order).count() == 2

    def test_shipment_failure_leaves_no_orphan_order(self, data_store, db_session, make_store, monkeypatch):
        store = make_store()

        def shipment_without_order(**kwargs):
            kwargs["order_id"] = None
            return OrderShipment(**kwargs)

        monkeypatch.setattr("src.repositories.data_store.OrderShipment", shipment_without_order)

        with pytest.raises(DataStoreError) as exc_info:
            data_store.create_order_with_shipment(store, _order_record())

        assert not isinstance(exc_info.value, DuplicateRecordError)
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderShipment).count() == 0


class TestProducts:

    def test_create_find_update(self, data_store, make_store):
        store = make_store(user_id="user-9")

        product = data_store.create_product(store, _product_record())
        assert product.status == "Editing"
        assert product.user_id == "user-9"
        assert product.finding_date == datetime.now(timezone.utc).date()

        found = data_store.find_product(store.id, "632910392")
        data_store.update_product(found, _product_record(title="IPod Nano 2"))

        assert data_store.find_product(store.id, "632910392").product_name == "IPod Nano 2"

    def test_duplicate_product_rejected(self, data_store, make_store):
        store = make_store()
        data_store.create_product(store, _product_record())

        with pytest.raises(DuplicateRecordError):
            data_store.create_product(store, _product_record())

    def test_list_newest_first_with_pagination(self, data_store, db_session, make_store):
        store = make_store()
        for day in range(1, 6):
            db_session.add(ProductResearch(
                store_id=store.id,
                product_name=f"Product {day}",
                shopify_id=str(day),
                status="Editing",
                finding_date=date(2024, 1, day),
            ))
        db_session.commit()

        page = data_store.list_products(store.id, limit=2, offset=1)

        assert [p.shopify_id for p in page] == ["4", "3"]
        assert data_store.count_products(store.id) == 5

    def test_list_is_scoped_to_store(self, data_store, make_store):
        first = make_store(shop_domain="first.myshopify.com")
        second = make_store(shop_domain="second.myshopify.com")
        data_store.create_product(first, _product_record())

        assert data_store.list_products(second.id, limit=50, offset=0) == []
        assert data_store.count_products(second.id) == 0

"""
Root test configuration and fixtures.

Every test gets its own in-memory SQLite database, a DataStore bound to
it, and a freshly loaded app config.
"""

import os
import uuid
import pytest
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["ENV"] = "test"
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_SCOPES"] = "read_products,read_orders"
os.environ["APP_URL"] = "https://test.example.com"
os.environ["INTERNAL_SERVICE_SECRET"] = "test-service-secret"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-32-chars-long!"
os.environ.pop("WEBHOOK_RELAY_URL", None)
os.environ.pop("WEBHOOK_RELAY_MODE", None)

TEST_API_SECRET = "test-api-secret"
TEST_SERVICE_SECRET = "test-service-secret"
TEST_SHOP_DOMAIN = "test-store.myshopify.com"


@pytest.fixture(autouse=True)
def _fresh_app_config():
    """Reload config from the environment for every test."""
    from src.config.app_config import reset_app_config

    reset_app_config()
    yield
    reset_app_config()


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite database with all tables."""
    from src.db_base import Base
    import src.models  # noqa: F401 - registers tables on Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def data_store(db_session):
    from src.repositories.data_store import SqlAlchemyDataStore

    return SqlAlchemyDataStore(db_session)


@pytest.fixture
def make_store(db_session):
    """
    Factory fixture that inserts a store, optionally with a credential.

    Usage:
        store = make_store(research_mode_enabled=True, access_token_encrypted="...")
    """
    from src.models import Store, StoreCredential

    def _make(
        shop_domain: str = TEST_SHOP_DOMAIN,
        research_mode_enabled: bool = False,
        user_id: Optional[str] = "user-1",
        access_token_encrypted: Optional[str] = None
    ):
        store = Store(
            id=str(uuid.uuid4()),
            store_id=shop_domain.split(".", 1)[0],
            shop_domain=shop_domain,
            name=shop_domain,
            user_id=user_id,
            research_mode_enabled=research_mode_enabled,
        )
        db_session.add(store)
        db_session.flush()
        if access_token_encrypted is not None:
            db_session.add(StoreCredential(
                store_id=store.id,
                access_token_encrypted=access_token_encrypted,
                scopes="read_products,read_orders",
            ))
        db_session.commit()
        return store

    return _make


@pytest.fixture
def test_app(data_store):
    """FastAPI app with the DataStore dependency bound to the test database."""
    from main import app
    from src.database.session import get_data_store

    app.dependency_overrides[get_data_store] = lambda: data_store

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    from fastapi.testclient import TestClient

    return TestClient(test_app, follow_redirects=False)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")

"""Repository layer: the DataStore interface and its SQLAlchemy implementation."""

from src.repositories.data_store import (
    DataStore,
    DataStoreError,
    DuplicateRecordError,
    OrderRecord,
    ProductRecord,
    SqlAlchemyDataStore,
)

__all__ = [
    "DataStore",
    "DataStoreError",
    "DuplicateRecordError",
    "OrderRecord",
    "ProductRecord",
    "SqlAlchemyDataStore",
]

"""
API schemas package.

Contains Pydantic models for response validation.
"""

from src.api.schemas.store_api import (
    Pagination,
    ProductItem,
    ProductsResponse,
    StoreCredentialsResponse,
    StoreSummary,
    ValidateKeyResponse,
)

__all__ = [
    "Pagination",
    "ProductItem",
    "ProductsResponse",
    "StoreCredentialsResponse",
    "StoreSummary",
    "ValidateKeyResponse",
]

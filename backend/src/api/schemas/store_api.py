"""
Response schemas for the dashboard read API.

Errors are not modelled here: every error body is {"error": "<message>"}.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class StoreSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    store_id: str
    user_id: Optional[str] = None
    research_mode_enabled: bool


class ValidateKeyResponse(BaseModel):
    valid: bool = True
    store: StoreSummary


class ProductItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_name: str
    shopify_id: str
    handle: Optional[str] = None
    status: str
    finding_date: date
    main_image_url: Optional[str] = None


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class ProductsResponse(BaseModel):
    success: bool = True
    products: List[ProductItem]
    pagination: Pagination


class StoreCredentialsResponse(BaseModel):
    """Decrypted credentials of one store, for the dashboard's server side."""
    access_token: str
    refresh_token: Optional[str] = None
    scopes: Optional[str] = None
    expires_at: Optional[datetime] = None
    shop_domain: str
    store_id: str

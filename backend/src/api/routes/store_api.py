"""
Dashboard read API.

Tenant-scoped reads authorized by a store's API key (or, for credentials,
its internal id). Error bodies are {"error": "<message>"}.

GET /api/validate-key?api_key=
GET /api/products?api_key=&limit=50&offset=0
GET /api/store-credentials?store_id=|api_key=
GET /api/shopify-graphql?shop=
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from src.api.schemas.store_api import (
    Pagination,
    ProductItem,
    ProductsResponse,
    StoreCredentialsResponse,
    StoreSummary,
    ValidateKeyResponse,
)
from src.database.session import get_data_store
from src.integrations.shopify.admin_client import ShopifyAdminClient, ShopifyAPIError
from src.platform.secrets import EncryptionError, decrypt_secret
from src.repositories.data_store import DataStore, DataStoreError
from src.services.session_storage import SessionStorage, offline_session_id
from src.services.tenant_resolver import normalize_shop_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["store-api"])

DEFAULT_PRODUCTS_LIMIT = 50


def _error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.get("/validate-key", response_model=ValidateKeyResponse)
async def validate_key(
    api_key: Optional[str] = Query(None),
    data_store: DataStore = Depends(get_data_store)
):
    """Check an API key and return the store it belongs to."""
    if not api_key:
        return _error("Missing api_key", status.HTTP_400_BAD_REQUEST)

    try:
        store = data_store.get_store_by_api_key(api_key)
    except DataStoreError:
        return _error("Server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    if store is None:
        return _error("Invalid api_key", status.HTTP_401_UNAUTHORIZED)

    return ValidateKeyResponse(store=StoreSummary.model_validate(store))


@router.get("/products", response_model=ProductsResponse)
async def list_products(
    api_key: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PRODUCTS_LIMIT, ge=1, le=250),
    offset: int = Query(0, ge=0),
    data_store: DataStore = Depends(get_data_store)
):
    """List the store's captured products, newest finding first."""
    if not api_key:
        return _error("Missing api_key", status.HTTP_400_BAD_REQUEST)

    try:
        store = data_store.get_store_by_api_key(api_key)
        if store is None:
            return _error("Invalid api_key", status.HTTP_401_UNAUTHORIZED)

        products = data_store.list_products(store.id, limit=limit, offset=offset)
        total = data_store.count_products(store.id)
    except DataStoreError as e:
        logger.error("Error fetching products", extra={"error": str(e)})
        return _error("Server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return ProductsResponse(
        products=[ProductItem.model_validate(p) for p in products],
        pagination=Pagination(limit=limit, offset=offset, total=total)
    )


@router.get("/store-credentials", response_model=StoreCredentialsResponse)
async def get_store_credentials(
    store_id: Optional[str] = Query(None),
    api_key: Optional[str] = Query(None),
    data_store: DataStore = Depends(get_data_store)
):
    """
    Return a store's decrypted credentials.

    store_id is the internal store id; api_key is used when it is absent.
    """
    if not store_id and not api_key:
        return _error("Missing store_id or api_key", status.HTTP_400_BAD_REQUEST)

    try:
        if store_id:
            store = data_store.get_store_by_id(store_id)
        else:
            store = data_store.get_store_by_api_key(api_key)
        if store is None:
            return _error("Store not found", status.HTTP_404_NOT_FOUND)

        credential = data_store.get_credentials(store.id)
    except DataStoreError as e:
        logger.error("Error fetching credentials", extra={"error": str(e)})
        return _error("Server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    if credential is None or credential.is_revoked:
        return _error("Credentials not found", status.HTTP_404_NOT_FOUND)

    try:
        access_token = await decrypt_secret(credential.access_token_encrypted)
    except EncryptionError as e:
        logger.error("Stored access token could not be decrypted", extra={
            "store_pk": store.id,
            "error": str(e)
        })
        return _error("Server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return StoreCredentialsResponse(
        access_token=access_token,
        refresh_token=credential.refresh_token,
        scopes=credential.scopes,
        expires_at=credential.expires_at,
        shop_domain=store.shop_domain or store.name,
        store_id=store.store_id
    )


@router.get("/shopify-graphql")
async def shopify_graphql(
    shop: Optional[str] = Query(None),
    data_store: DataStore = Depends(get_data_store)
):
    """
    Query the shop's Admin API with its offline session.

    Returns Shopify's GraphQL response body unchanged.
    """
    if not shop:
        return _error("The 'shop' parameter is required", status.HTTP_400_BAD_REQUEST)

    shop_domain = normalize_shop_domain(shop)
    session = await SessionStorage(data_store).load_session(offline_session_id(shop_domain))
    if session is None:
        logger.warning("No offline session for shop", extra={"shop_domain": shop_domain})
        return _error("Store not found or access token missing", status.HTTP_404_NOT_FOUND)

    try:
        async with ShopifyAdminClient(session.shop, session.access_token) as client:
            data = await client.get_shop_overview()
    except ShopifyAPIError as e:
        if e.status_code is None:
            return _error("Request to the Shopify API failed", status.HTTP_502_BAD_GATEWAY)
        return _error("Failed to fetch data from Shopify", e.status_code, details=e.details)

    return data

"""
Shopify OAuth install and callback routes.

GET /api/auth/install?shop=<domain>   -> 302 to Shopify's authorize page
GET /api/auth/callback?code=&state=&shop=&hmac=...  -> 302 into the app

After a verified handshake the callback always redirects into the app,
even when the installation could not be persisted.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from src.database.session import get_data_store
from src.repositories.data_store import DataStore, DataStoreError
from src.services.oauth_service import (
    HMACVerificationError,
    InvalidShopDomainError,
    InvalidStateError,
    OAuthService,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        content=f"<html><body><h1>{title}</h1><p>{message}</p></body></html>",
        status_code=status_code
    )


def _get_oauth_service(data_store: DataStore):
    try:
        return OAuthService(data_store)
    except ValueError as e:
        logger.error("OAuth not configured", extra={"error": str(e)})
        return None


@router.get("/install")
async def install(
    shop: str = Query(..., description="Shop domain, e.g. mystore.myshopify.com"),
    data_store: DataStore = Depends(get_data_store)
):
    """Start the OAuth flow for a shop."""
    service = _get_oauth_service(data_store)
    if service is None:
        return _error_page("Configuration Error", "OAuth is not configured.", status.HTTP_500_INTERNAL_SERVER_ERROR)

    try:
        auth_url = service.create_authorization_url(shop)
    except InvalidShopDomainError:
        logger.warning("Install requested for invalid shop domain", extra={"shop_domain": shop})
        return _error_page("Invalid Shop Domain", "Expected a *.myshopify.com domain.", status.HTTP_400_BAD_REQUEST)
    except DataStoreError:
        return _error_page("Installation Error", "Could not start installation.", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def callback(
    request: Request,
    shop: str = Query(...),
    code: str = Query(...),
    state: str = Query(...),
    data_store: DataStore = Depends(get_data_store)
):
    """Complete the OAuth flow and redirect into the embedded app."""
    service = _get_oauth_service(data_store)
    if service is None:
        return _error_page("Configuration Error", "OAuth is not configured.", status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not service.validate_shop_domain(shop):
        return _error_page("Invalid Shop Domain", "Expected a *.myshopify.com domain.", status.HTTP_400_BAD_REQUEST)

    try:
        completion = await service.complete_oauth(
            shop=shop,
            code=code,
            state=state,
            params=dict(request.query_params)
        )
    except HMACVerificationError:
        logger.warning("OAuth callback HMAC verification failed", extra={"shop_domain": shop})
        return _error_page("Security Verification Failed", "The request signature is invalid.", status.HTTP_400_BAD_REQUEST)
    except InvalidStateError as e:
        logger.warning("OAuth callback state rejected", extra={"shop_domain": shop, "reason": str(e)})
        return _error_page("Invalid OAuth State", str(e), status.HTTP_400_BAD_REQUEST)
    except TokenExchangeError:
        return _error_page("Installation Error", "Could not obtain an access token.", status.HTTP_502_BAD_GATEWAY)
    except DataStoreError:
        return _error_page("Installation Error", "Could not verify the installation request.", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return RedirectResponse(
        url=f"https://{completion.shop_domain}/admin/apps/{service.api_key}",
        status_code=status.HTTP_302_FOUND
    )

"""
FastAPI application entry point for the Shopify research bridge.

Shopify webhooks and OAuth land here; captured products, orders and
store credentials are served to the external dashboard by API key.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import auth
from src.api.routes import health
from src.api.routes import store_api
from src.api.routes import webhooks_shopify
from src.config.app_config import get_app_config
from src.database.session import init_db
from src.platform.secrets import SecretRedactingFilter, validate_encryption_configured

# Configure structured logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
for handler in logging.getLogger().handlers:
    handler.addFilter(SecretRedactingFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Shopify research bridge")

    config = get_app_config()
    if not config.shopify_api_secret:
        logger.error("SHOPIFY_API_SECRET is not set. Every signed webhook will be rejected.")
    if not validate_encryption_configured():
        logger.error("ENCRYPTION_KEY is not set. OAuth installs cannot store access tokens.")
    logger.info("Webhook relay configuration", extra={
        "relay_mode": config.relay_mode,
        "relay_enabled": config.relay_enabled
    })

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL is not set. Datastore endpoints will return 503.")
        app.state.database_configured = False
    else:
        # Mask credentials for safe logging
        masked = database_url.split("@")[-1] if "@" in database_url else "(no credentials)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        app.state.database_configured = True
        init_db()

    yield

    # Shutdown
    logger.info("Shutting down Shopify research bridge")


# Create FastAPI app
app = FastAPI(
    title="Shopify Research Bridge",
    description="Shopify webhook ingestion, OAuth session storage and dashboard read API",
    version="1.0.0",
    lifespan=lifespan
)

# Include Shopify Admin in CORS origins for embedding
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
if "https://admin.shopify.com" not in cors_origins:
    cors_origins.append("https://admin.shopify.com")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health route
app.include_router(health.router)

# Include OAuth install/callback routes
app.include_router(auth.router)

# Include Shopify webhook routes (HMAC or service bearer, no other auth)
app.include_router(webhooks_shopify.router)

# Include dashboard read API (API key scoped)
app.include_router(store_api.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )

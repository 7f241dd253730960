# API routes
from src.api.routes import health
from src.api.routes import auth
from src.api.routes import store_api
from src.api.routes import webhooks_shopify

__all__ = ["health", "auth", "store_api", "webhooks_shopify"]

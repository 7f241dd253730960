"""
Business logic services.
"""

from src.services.oauth_service import OAuthService
from src.services.relay_forwarder import RelayForwarder
from src.services.session_storage import SessionStorage
from src.services.tenant_resolver import TenantResolver
from src.services.webhook_processor import WebhookProcessor

__all__ = ["OAuthService", "RelayForwarder", "SessionStorage", "TenantResolver", "WebhookProcessor"]

"""
Platform-level security modules.

- secrets: token encryption at rest and log redaction
- webhook_verification: HMAC and service-bearer authentication of webhooks
"""

from src.platform.secrets import (
    EncryptionError,
    encrypt_secret,
    decrypt_secret,
    redact_secrets,
    redact_value,
    is_secret_key,
    SecretRedactingFilter,
    validate_encryption_configured,
)

from src.platform.webhook_verification import (
    WebhookAuthenticationError,
    WebhookAuthenticator,
    compute_webhook_hmac,
    is_trusted_service_request,
    verify_shopify_webhook,
)

__all__ = [
    # Secrets
    "EncryptionError",
    "encrypt_secret",
    "decrypt_secret",
    "redact_secrets",
    "redact_value",
    "is_secret_key",
    "SecretRedactingFilter",
    "validate_encryption_configured",
    # Webhook verification
    "WebhookAuthenticationError",
    "WebhookAuthenticator",
    "compute_webhook_hmac",
    "is_trusted_service_request",
    "verify_shopify_webhook",
]

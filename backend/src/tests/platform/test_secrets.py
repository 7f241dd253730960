"""
Secrets management tests.

CRITICAL: These tests verify that:
1. Access tokens are encrypted at rest and decrypt with the same key
2. Secrets are never logged in plaintext
3. Secret redaction works correctly
"""

import pytest
import logging
from io import StringIO

from src.platform.secrets import (
    SecretsManager,
    EncryptionError,
    encrypt_secret,
    decrypt_secret,
    redact_secrets,
    redact_value,
    is_secret_key,
    SecretRedactingFilter,
    validate_encryption_configured,
    REDACTED_VALUE,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def log_capture():
    """Capture log output for testing."""
    log_stream = StringIO()
    handler = logging.StreamHandler(log_stream)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))
    handler.addFilter(SecretRedactingFilter())

    logger = logging.getLogger("test_secrets")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream, logger, handler

    logger.removeHandler(handler)


# ============================================================================
# TEST SUITE: ENCRYPTION
# ============================================================================

class TestEncryption:
    """Fernet encryption of stored tokens."""

    @pytest.mark.asyncio
    async def test_encrypt_decrypt(self):
        token = "shpat_" + "a" * 32
        encrypted = await encrypt_secret(token)

        assert encrypted != token
        assert token not in encrypted
        assert await decrypt_secret(encrypted) == token

    @pytest.mark.asyncio
    async def test_wrong_key_fails(self):
        encrypted = await SecretsManager("key-one").encrypt("token")

        with pytest.raises(EncryptionError):
            await SecretsManager("key-two").decrypt(encrypted)

    @pytest.mark.asyncio
    async def test_missing_key_fails(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)

        with pytest.raises(EncryptionError, match="not configured"):
            await SecretsManager().encrypt("token")

    @pytest.mark.asyncio
    async def test_key_change_is_picked_up(self, monkeypatch):
        manager = SecretsManager()
        monkeypatch.setenv("ENCRYPTION_KEY", "first-key")
        encrypted = await manager.encrypt("token")

        monkeypatch.setenv("ENCRYPTION_KEY", "second-key")
        with pytest.raises(EncryptionError):
            await manager.decrypt(encrypted)

    @pytest.mark.asyncio
    async def test_empty_values_rejected(self):
        with pytest.raises(ValueError):
            await encrypt_secret("")
        with pytest.raises(ValueError):
            await decrypt_secret("")

    def test_validate_encryption_configured(self, monkeypatch):
        assert validate_encryption_configured() is True
        monkeypatch.delenv("ENCRYPTION_KEY")
        assert validate_encryption_configured() is False


# ============================================================================
# TEST SUITE: REDACTION
# ============================================================================

class TestSecretKeyDetection:
    """Test detection of secret-containing keys."""

    @pytest.mark.parametrize("key", [
        "api_key",
        "API_KEY",
        "access_token",
        "refresh_token",
        "shopify_api_secret",
        "Authorization",
        "hmac_header",
        "DATABASE_URL",
    ])
    def test_secret_keys(self, key):
        assert is_secret_key(key) is True

    @pytest.mark.parametrize("key", ["shop_domain", "topic", "store_pk", "status_code"])
    def test_plain_keys(self, key):
        assert is_secret_key(key) is False


class TestRedaction:

    def test_redact_nested(self):
        data = {
            "shop": "test-store.myshopify.com",
            "credentials": {"access_token": "shpat_x"},
            "items": [{"api_key": "k", "title": "Shirt"}],
        }
        redacted = redact_secrets(data)

        assert redacted["shop"] == "test-store.myshopify.com"
        assert redacted["credentials"] == REDACTED_VALUE
        assert redacted["items"][0]["api_key"] == REDACTED_VALUE
        assert redacted["items"][0]["title"] == "Shirt"

    def test_redact_value_patterns(self):
        token = "shpat_" + "0123456789abcdef" * 2
        text = f"Authorization: Bearer abc.def-123 token={token}"
        redacted = redact_value(text)

        assert "abc.def-123" not in redacted
        assert token not in redacted
        assert REDACTED_VALUE in redacted

    def test_non_strings_untouched(self):
        assert redact_value(42) == 42
        assert redact_secrets(None) is None


class TestSecretRedactingFilter:

    def test_message_is_redacted(self, log_capture):
        stream, logger, _ = log_capture
        logger.info("Forwarding with Bearer super-secret-value")

        output = stream.getvalue()
        assert "super-secret-value" not in output
        assert REDACTED_VALUE in output

    def test_extra_fields_are_redacted(self, log_capture):
        stream, logger, handler = log_capture
        handler.setFormatter(logging.Formatter('%(message)s %(access_token)s %(shop_domain)s'))

        logger.info("Token stored", extra={
            "access_token": "shpat_plaintext",
            "shop_domain": "test-store.myshopify.com"
        })

        output = stream.getvalue()
        assert "shpat_plaintext" not in output
        assert "test-store.myshopify.com" in output

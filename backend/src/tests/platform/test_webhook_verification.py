"""
Webhook authentication tests.

CRITICAL: These tests verify that:
1. A body verifies only against its own signature and secret
2. Missing secrets or headers reject instead of skipping the check
3. The internal bearer is checked before HMAC and matches exactly
"""

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from src.platform.webhook_verification import (
    AUTH_METHOD_HMAC,
    AUTH_METHOD_SERVICE_BEARER,
    WebhookAuthenticationError,
    WebhookAuthenticator,
    compute_webhook_hmac,
    is_trusted_service_request,
    verify_shopify_webhook,
)

SECRET = "test-api-secret"
SERVICE_SECRET = "test-service-secret"
BODY = b'{"id": 123, "title": "Blue Shirt"}'

secrets_strategy = st.text(min_size=1, max_size=64)


class TestVerifyShopifyWebhook:
    """HMAC-SHA256 signature checks."""

    @settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(body=st.binary(max_size=2048), secret=secrets_strategy)
    def test_signed_body_verifies(self, body, secret):
        assert verify_shopify_webhook(body, compute_webhook_hmac(body, secret), secret) is True

    @settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(body=st.binary(min_size=1, max_size=512), secret=secrets_strategy, data=st.data())
    def test_any_flipped_byte_fails(self, body, secret, data):
        signature = compute_webhook_hmac(body, secret)
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        flip = data.draw(st.integers(min_value=1, max_value=255))

        tampered = bytearray(body)
        tampered[index] ^= flip

        assert verify_shopify_webhook(bytes(tampered), signature, secret) is False

    def test_wrong_secret_fails(self):
        signature = compute_webhook_hmac(BODY, "other-secret")
        assert verify_shopify_webhook(BODY, signature, SECRET) is False

    def test_reserialized_body_fails(self):
        signature = compute_webhook_hmac(BODY, SECRET)
        reserialized = b'{"id":123,"title":"Blue Shirt"}'
        assert verify_shopify_webhook(reserialized, signature, SECRET) is False

    @pytest.mark.parametrize("header,secret", [
        (None, SECRET),
        ("", SECRET),
        ("c2lnbmF0dXJl", None),
        ("c2lnbmF0dXJl", ""),
    ])
    def test_missing_inputs_reject(self, header, secret):
        assert verify_shopify_webhook(BODY, header, secret) is False

    def test_garbage_header_rejects(self):
        assert verify_shopify_webhook(BODY, "not-base64-at-all", SECRET) is False


class TestServiceBearer:
    """Internal relay bearer credential."""

    def test_exact_bearer_matches(self):
        assert is_trusted_service_request(f"Bearer {SERVICE_SECRET}", SERVICE_SECRET) is True

    @pytest.mark.parametrize("header", [
        SERVICE_SECRET,
        f"bearer {SERVICE_SECRET}",
        f"Bearer {SERVICE_SECRET}x",
        f"Bearer  {SERVICE_SECRET}",
        "Bearer ",
        None,
    ])
    def test_inexact_bearer_rejected(self, header):
        assert is_trusted_service_request(header, SERVICE_SECRET) is False

    def test_unconfigured_secret_never_matches(self):
        assert is_trusted_service_request("Bearer ", None) is False
        assert is_trusted_service_request("Bearer None", None) is False


@pytest.mark.security
class TestWebhookAuthenticator:
    """Bearer first, then HMAC."""

    def test_valid_hmac(self):
        authenticator = WebhookAuthenticator(api_secret=SECRET, service_secret=SERVICE_SECRET)
        method = authenticator.authenticate(BODY, compute_webhook_hmac(BODY, SECRET))
        assert method == AUTH_METHOD_HMAC

    def test_bearer_bypasses_signature(self):
        authenticator = WebhookAuthenticator(api_secret=SECRET, service_secret=SERVICE_SECRET)
        method = authenticator.authenticate(BODY, "invalid", f"Bearer {SERVICE_SECRET}")
        assert method == AUTH_METHOD_SERVICE_BEARER

    def test_bearer_works_without_api_secret(self):
        authenticator = WebhookAuthenticator(api_secret=None, service_secret=SERVICE_SECRET)
        method = authenticator.authenticate(BODY, None, f"Bearer {SERVICE_SECRET}")
        assert method == AUTH_METHOD_SERVICE_BEARER

    def test_wrong_bearer_falls_back_to_hmac(self):
        authenticator = WebhookAuthenticator(api_secret=SECRET, service_secret=SERVICE_SECRET)
        method = authenticator.authenticate(
            BODY, compute_webhook_hmac(BODY, SECRET), "Bearer wrong"
        )
        assert method == AUTH_METHOD_HMAC

    def test_missing_api_secret_rejects(self):
        authenticator = WebhookAuthenticator(api_secret=None)
        with pytest.raises(WebhookAuthenticationError, match="not configured"):
            authenticator.authenticate(BODY, compute_webhook_hmac(BODY, SECRET))

    def test_missing_header_rejects(self):
        authenticator = WebhookAuthenticator(api_secret=SECRET)
        with pytest.raises(WebhookAuthenticationError, match="Missing HMAC"):
            authenticator.authenticate(BODY, None)

    def test_invalid_hmac_rejects(self):
        authenticator = WebhookAuthenticator(api_secret=SECRET)
        with pytest.raises(WebhookAuthenticationError, match="Invalid HMAC"):
            authenticator.authenticate(BODY, compute_webhook_hmac(b"other", SECRET))

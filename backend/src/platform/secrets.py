"""
Secrets encryption and log redaction.

CRITICAL SECURITY REQUIREMENTS:
- NEVER store Shopify access tokens in plaintext in the DB
- All encrypt/decrypt operations MUST use this module
- Any log field named like a token/secret/key is redacted

Encryption uses a Fernet key derived from the ENCRYPTION_KEY environment
variable.

Usage:
    from src.platform.secrets import encrypt_secret, decrypt_secret, redact_secrets

    encrypted = await encrypt_secret(access_token)
    access_token = await decrypt_secret(encrypted)
    safe_data = redact_secrets({"access_token": "shpat_...", "shop": "x"})
"""

import base64
import hashlib
import logging
import os
import re
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Patterns for detecting secret-bearing keys in log data
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(secret)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(refresh[_-]?token)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
    re.compile(r"(hmac)", re.IGNORECASE),
    re.compile(r"(database[_-]?url)", re.IGNORECASE),
    re.compile(r"(credentials)", re.IGNORECASE),
]

# Secret value patterns to redact wherever they appear in a string
SECRET_VALUE_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9._~+/=-]+)"),
    re.compile(r"(shpat_[a-fA-F0-9]{32,})"),  # Shopify admin access tokens
    re.compile(r"(shpua_[a-fA-F0-9]{32,})"),  # Shopify user access tokens
    re.compile(r"(shpss_[a-zA-Z0-9]{24,})"),  # Shopify shared secrets
]

REDACTED_VALUE = "[REDACTED]"

# Static salt: the derived key must be stable across processes
_KEY_DERIVATION_SALT = b"shopify-research-bridge-salt"
_KEY_DERIVATION_ITERATIONS = 100000


class EncryptionError(Exception):
    """Raised when encryption/decryption operations fail."""
    pass


class SecretsManager:
    """Encrypts and decrypts secrets with a Fernet key derived from ENCRYPTION_KEY."""

    def __init__(self, encryption_key: Optional[str] = None):
        self._encryption_key = encryption_key
        self._fernet: Optional[Fernet] = None
        self._source_key: Optional[str] = None

    def _get_fernet(self) -> Fernet:
        encryption_key = self._encryption_key or os.getenv("ENCRYPTION_KEY")
        if not encryption_key:
            raise EncryptionError("ENCRYPTION_KEY is not configured")

        # Re-derive when the environment key changes (tests swap it)
        if self._fernet is None or self._source_key != encryption_key:
            derived_key = hashlib.pbkdf2_hmac(
                "sha256",
                encryption_key.encode(),
                _KEY_DERIVATION_SALT,
                _KEY_DERIVATION_ITERATIONS,
                dklen=32,
            )
            self._fernet = Fernet(base64.urlsafe_b64encode(derived_key))
            self._source_key = encryption_key
        return self._fernet

    async def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            ValueError: If plaintext is empty
            EncryptionError: If no key is configured
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")
        return self._get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")

    async def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a string produced by encrypt().

        Raises:
            ValueError: If ciphertext is empty
            EncryptionError: If no key is configured or the ciphertext is invalid
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")
        try:
            return self._get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            raise EncryptionError("Invalid ciphertext or wrong encryption key")


# Singleton instance
_secrets_manager = SecretsManager()


async def encrypt_secret(plaintext: str) -> str:
    """Encrypt a secret for storage."""
    return await _secrets_manager.encrypt(plaintext)


async def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a stored secret."""
    return await _secrets_manager.decrypt(ciphertext)


def is_secret_key(key: str) -> bool:
    """Check if a dictionary key likely contains a secret."""
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    """Redact secret patterns from a string value."""
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Use this before logging any data that might contain secrets.
    """
    if _depth > 10:
        return data

    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE if is_secret_key(str(key)) else redact_secrets(value, _depth + 1)
            for key, value in data.items()
        }

    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts secrets from log records.

    Usage:
        handler.addFilter(SecretRedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_secrets(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        # Fields passed through extra={...}
        for key in list(record.__dict__.keys()):
            if is_secret_key(key):
                setattr(record, key, REDACTED_VALUE)

        return True


def validate_encryption_configured() -> bool:
    """Check if token encryption is configured."""
    return bool(os.getenv("ENCRYPTION_KEY"))

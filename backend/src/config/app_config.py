"""
Application configuration loaded from environment variables.

All values are read once on first access and cached. Tests call
reset_app_config() after changing the environment.

Usage:
    from src.config.app_config import get_app_config

    config = get_app_config()
    if config.relay_enabled:
        ...
"""

import logging
import os
from dataclasses import dataclass
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

RELAY_MODE_OFF = "off"
RELAY_MODE_FANOUT = "fanout"
RELAY_MODE_FORWARD = "forward"
RELAY_MODES = (RELAY_MODE_OFF, RELAY_MODE_FANOUT, RELAY_MODE_FORWARD)

DEFAULT_SCOPES = "read_products,read_orders"
DEFAULT_RELAY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class AppConfig:
    """
    Resolved runtime configuration.

    Secrets are optional at load time. A missing secret never disables a
    check: signature verification against a missing secret always fails.
    """
    shopify_api_key: Optional[str]
    shopify_api_secret: Optional[str]
    shopify_scopes: str
    app_url: str
    internal_service_secret: Optional[str]
    relay_url: Optional[str]
    relay_mode: str
    relay_timeout_seconds: float

    @property
    def relay_enabled(self) -> bool:
        return (
            self.relay_mode != RELAY_MODE_OFF
            and bool(self.relay_url)
            and bool(self.internal_service_secret)
        )

    @classmethod
    def from_env(cls) -> "AppConfig":
        relay_mode = os.getenv("WEBHOOK_RELAY_MODE", RELAY_MODE_OFF).strip().lower()
        if relay_mode not in RELAY_MODES:
            raise ValueError(
                f"WEBHOOK_RELAY_MODE must be one of {', '.join(RELAY_MODES)}, got {relay_mode!r}"
            )

        relay_url = os.getenv("WEBHOOK_RELAY_URL") or None
        if relay_mode != RELAY_MODE_OFF and not relay_url:
            logger.warning(
                "Webhook relay mode set without WEBHOOK_RELAY_URL; relay disabled",
                extra={"relay_mode": relay_mode}
            )

        internal_service_secret = os.getenv("INTERNAL_SERVICE_SECRET") or None
        if relay_mode != RELAY_MODE_OFF and relay_url and not internal_service_secret:
            logger.warning(
                "Webhook relay mode set without INTERNAL_SERVICE_SECRET; relay disabled",
                extra={"relay_mode": relay_mode}
            )

        try:
            relay_timeout = float(
                os.getenv("WEBHOOK_RELAY_TIMEOUT_SECONDS", DEFAULT_RELAY_TIMEOUT_SECONDS)
            )
        except ValueError:
            raise ValueError("WEBHOOK_RELAY_TIMEOUT_SECONDS must be a number")

        return cls(
            shopify_api_key=os.getenv("SHOPIFY_API_KEY") or None,
            shopify_api_secret=os.getenv("SHOPIFY_API_SECRET") or None,
            shopify_scopes=os.getenv("SHOPIFY_SCOPES", DEFAULT_SCOPES),
            app_url=os.getenv("APP_URL", ""),
            internal_service_secret=internal_service_secret,
            relay_url=relay_url,
            relay_mode=relay_mode,
            relay_timeout_seconds=relay_timeout,
        )


_config: Optional[AppConfig] = None
_lock = Lock()


def get_app_config() -> AppConfig:
    """Get the cached application config, loading it on first use."""
    global _config
    if _config is None:
        with _lock:
            if _config is None:
                _config = AppConfig.from_env()
    return _config


def reset_app_config() -> None:
    """Drop the cached config so the next access re-reads the environment."""
    global _config
    with _lock:
        _config = None

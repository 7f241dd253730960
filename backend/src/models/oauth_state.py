"""
OAuth state model for the Shopify install flow.

Stores state/nonce pairs for CSRF protection between /api/auth/install
and /api/auth/callback. States expire after OAUTH_STATE_TTL and are single-use.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text

from src.db_base import Base
from src.models.base import TimestampMixin, generate_uuid

OAUTH_STATE_TTL = timedelta(minutes=10)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on round trip
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OAuthState(Base, TimestampMixin):
    """Single-use, short-lived state for one OAuth authorization attempt."""

    __tablename__ = "oauth_states"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    shop_domain = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Shop domain the authorization was started for"
    )
    state = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Cryptographically secure state parameter"
    )
    nonce = Column(
        String(255),
        nullable=False,
        comment="Nonce sent alongside state"
    )
    scopes = Column(
        Text,
        nullable=False,
        comment="OAuth scopes requested"
    )
    redirect_uri = Column(
        Text,
        nullable=False,
        comment="OAuth redirect URI"
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="When this state expires"
    )
    used_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When this state was consumed"
    )

    def __repr__(self) -> str:
        return f"<OAuthState(id={self.id}, shop_domain={self.shop_domain}, state={self.state[:8]}...)>"

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > _as_utc(self.expires_at)

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def mark_used(self) -> None:
        self.used_at = datetime.now(timezone.utc)

"""
StoreCredential model: the current OAuth credential set for a store.

One row per store, upserted on every successful OAuth callback.
Access tokens are encrypted at rest (see src.platform.secrets).
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from src.db_base import Base
from src.models.base import TimestampMixin, generate_uuid


class StoreCredential(Base, TimestampMixin):
    """
    OAuth credentials for a store.

    SECURITY:
    - access_token_encrypted must be decrypted only when the token is needed
    - refresh_token is currently always null (offline tokens do not expire)
    """

    __tablename__ = "store_credentials"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
        comment="Owning store (one credential set per store)"
    )

    access_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted Shopify access token, null once revoked"
    )
    refresh_token = Column(
        Text,
        nullable=True,
        comment="Unused; offline tokens have no refresh token"
    )
    scopes = Column(
        Text,
        nullable=True,
        comment="Comma-separated OAuth scopes granted"
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Token expiry, null for offline tokens"
    )

    store = relationship("Store", back_populates="credential")

    __table_args__ = (
        UniqueConstraint("store_id", name="uq_store_credentials_store_id"),
    )

    def __repr__(self) -> str:
        return f"<StoreCredential(id={self.id}, store_id={self.store_id})>"

    @property
    def is_revoked(self) -> bool:
        return not self.access_token_encrypted

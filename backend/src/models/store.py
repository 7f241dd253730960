"""
Store model: one installed instance of the app for one Shopify shop.

CRITICAL DESIGN DECISIONS:
- store_id is the short shop identifier ("mystore" for mystore.myshopify.com)
- shop_domain is the canonical full domain
- Both are unique; a store may exist before any domain event references it
- Stores are never deleted by the app; uninstall only revokes credentials
"""

from sqlalchemy import (
    Boolean, Column, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from src.db_base import Base
from src.models.base import TimestampMixin, generate_api_key, generate_uuid


def derive_shop_id(shop_domain: str) -> str:
    """
    Derive the short shop identifier from a full shop domain.

    Takes the substring before the first ".", so "abc.myshopify.com"
    and "abc.platform.example" both map to "abc".
    """
    return shop_domain.split(".", 1)[0]


class Store(Base, TimestampMixin):
    """
    Tenant record linking a Shopify shop to its owning dashboard user.

    SECURITY:
    - api_key authorizes the external dashboard read API; never log it
    - OAuth credentials live in StoreCredential, not on this row
    """

    __tablename__ = "stores"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    store_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Short shop identifier (mystore for mystore.myshopify.com)"
    )
    shop_domain = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Shopify store domain (mystore.myshopify.com)"
    )

    user_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Owning dashboard user, null until linked"
    )
    name = Column(
        String(255),
        nullable=False,
        comment="Store display name"
    )
    api_key = Column(
        String(64),
        nullable=False,
        unique=True,
        default=generate_api_key,
        comment="Opaque key for external dashboard access"
    )
    research_mode_enabled = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Capture newly created products into product_research"
    )
    scopes = Column(
        Text,
        nullable=True,
        comment="Comma-separated OAuth scopes granted"
    )

    credential = relationship(
        "StoreCredential",
        back_populates="store",
        uselist=False,
        lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint("store_id", name="uq_stores_store_id"),
        UniqueConstraint("shop_domain", name="uq_stores_shop_domain"),
    )

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, store_id={self.store_id}, shop_domain={self.shop_domain})>"

    @property
    def has_valid_token(self) -> bool:
        """Check if store has a usable access token."""
        return self.credential is not None and bool(self.credential.access_token_encrypted)

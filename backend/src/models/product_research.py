"""
ProductResearch model: products captured while research mode is enabled.

Rows are created from products/create webhooks (only when the store has
research_mode_enabled) and refreshed from products/update webhooks.
"""

from sqlalchemy import Column, Date, ForeignKey, Index, String, Text, UniqueConstraint

from src.db_base import Base
from src.models.base import TimestampMixin, generate_uuid

DEFAULT_PRODUCT_STATUS = "Editing"


class ProductResearch(Base, TimestampMixin):
    """A product observed on the store, tracked in the research dashboard."""

    __tablename__ = "product_research"

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
        index=True,
        comment="Owning store"
    )
    user_id = Column(
        String(255),
        nullable=True,
        comment="Owning dashboard user at capture time"
    )

    product_name = Column(
        Text,
        nullable=False,
        comment="Product title"
    )
    shopify_id = Column(
        String(64),
        nullable=False,
        comment="Shopify product id, stringified"
    )
    handle = Column(
        String(255),
        nullable=True,
        comment="Product handle"
    )
    status = Column(
        String(64),
        nullable=False,
        default=DEFAULT_PRODUCT_STATUS,
        comment="Free-text research status"
    )
    finding_date = Column(
        Date,
        nullable=False,
        comment="Date the product was first captured"
    )
    main_image_url = Column(
        Text,
        nullable=True,
        comment="Main product image URL"
    )

    __table_args__ = (
        UniqueConstraint("store_id", "shopify_id", name="uq_product_research_store_shopify_id"),
        Index("ix_product_research_store_finding_date", "store_id", "finding_date"),
    )

    def __repr__(self) -> str:
        return f"<ProductResearch(id={self.id}, store_id={self.store_id}, shopify_id={self.shopify_id})>"

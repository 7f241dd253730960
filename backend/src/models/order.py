"""
Order and OrderShipment models.

Every Order has exactly one OrderShipment, created in the same
transaction as the order itself.
"""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from src.db_base import Base
from src.models.base import TimestampMixin, generate_uuid

DEFAULT_ORDER_STATUS = "Pending"
DEFAULT_SHIPMENT_STATUS = "Unfulfilled"


class Order(Base, TimestampMixin):
    """
    An order received from Shopify.

    (store_id, shopify_id) is unique so redelivered orders/create
    webhooks cannot create duplicate rows.
    """

    __tablename__ = "orders"

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

    order_number = Column(
        String(64),
        nullable=False,
        comment="Human-facing order number"
    )
    shopify_id = Column(
        String(64),
        nullable=False,
        comment="Shopify order id, stringified"
    )
    customer_email = Column(String(255), nullable=True)
    customer_first_name = Column(String(255), nullable=True)
    customer_last_name = Column(String(255), nullable=True)
    order_date = Column(
        String(10),
        nullable=False,
        comment="YYYY-MM-DD (UTC) split from created_at"
    )
    order_time = Column(
        String(5),
        nullable=False,
        comment="HH:MM (UTC) split from created_at"
    )
    internal_status = Column(
        String(64),
        nullable=False,
        default=DEFAULT_ORDER_STATUS,
        comment="Fulfilment workflow status"
    )

    shipment = relationship(
        "OrderShipment",
        back_populates="order",
        uselist=False,
        lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint("store_id", "shopify_id", name="uq_orders_store_shopify_id"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, store_id={self.store_id}, shopify_id={self.shopify_id})>"


class OrderShipment(Base, TimestampMixin):
    """Shipment tracking row for an order."""

    __tablename__ = "order_shipments"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Order this shipment belongs to"
    )
    status = Column(
        String(64),
        nullable=False,
        default=DEFAULT_SHIPMENT_STATUS,
        comment="Shipment status"
    )

    order = relationship("Order", back_populates="shipment")

    def __repr__(self) -> str:
        return f"<OrderShipment(id={self.id}, order_id={self.order_id}, status={self.status})>"

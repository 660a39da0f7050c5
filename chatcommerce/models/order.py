import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from chatcommerce.core.database import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("tenant_id", "order_id", name="uq_orders_tenant_order_id"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    # Human-shareable id, e.g. ORD-M2K4Z9QX-7F2
    order_id = Column(String(40), index=True, nullable=False)

    customer_phone = Column(String(30), index=True, nullable=False)
    customer_name = Column(String(120), nullable=True)
    delivery_address = Column(Text, nullable=True)

    # Snapshot of the cart lines at commit time; never rewritten.
    items_json = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)
    item_count = Column(Integer, nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    # pending / confirmed / processing / shipped / delivered / cancelled
    status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    credit_days = Column(Integer, nullable=True)
    source = Column(String(30), nullable=False, default="whatsapp_bot")
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)

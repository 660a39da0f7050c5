import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, Text, func

from chatcommerce.core.database import Base


def _product_id() -> str:
    return uuid.uuid4().hex


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_tenant_category", "tenant_id", "category"),)

    # Opaque storage id; also the id of the catalog list row.
    id = Column(String(40), primary_key=True, default=_product_id)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(80), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    unit = Column(String(20), nullable=True)
    stock = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

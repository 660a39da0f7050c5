from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from chatcommerce.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    business_name = Column(String(160), nullable=False, default="My Store")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

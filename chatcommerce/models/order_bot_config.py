import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from chatcommerce.core.database import Base


class OrderBotConfig(Base):
    __tablename__ = "order_bot_config"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, unique=True, index=True, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    welcome_message = Column(Text, nullable=True)
    menu_options = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    payment_settings = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    order_settings = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    messages = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from chatcommerce.core.database import Base


class Flow(Base):
    __tablename__ = "flows"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    trigger_keywords = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    # [{"type": "message"|"buttons"|"list", ...}]
    nodes = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

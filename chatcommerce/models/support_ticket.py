import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB

from chatcommerce.core.database import Base


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    customer_phone = Column(String(30), nullable=False)
    topic = Column(String(40), nullable=True)
    # open / closed
    status = Column(String(20), nullable=False, default="open")
    transcript = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)


Index("ix_support_tickets_tenant_phone_status", SupportTicket.tenant_id, SupportTicket.customer_phone, SupportTicket.status)

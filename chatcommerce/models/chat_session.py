import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from chatcommerce.core.database import Base


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (UniqueConstraint("tenant_id", "customer_phone", name="uq_chat_sessions_tenant_phone"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    # digits only
    customer_phone = Column(String(30), index=True, nullable=False)

    state = Column(String(40), nullable=False, default="idle")
    current_flow = Column(String(160), nullable=True)
    current_step = Column(String(80), nullable=True)

    cart = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    cart_total = Column(Numeric(12, 2), nullable=False, default=0)

    payment_method = Column(String(20), nullable=True)
    credit_days = Column(Integer, nullable=True)
    temp_customer_info = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    last_order_id = Column(String(40), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

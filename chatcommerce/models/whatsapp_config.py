from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from chatcommerce.core.database import Base


class WhatsAppConfig(Base):
    __tablename__ = "whatsapp_config"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, index=True, nullable=False)
    provider = Column(String, nullable=False, default="mock")
    # Channel id: most specific lookup key for inbound events.
    phone_number_id = Column(String, unique=True, index=True, nullable=True)
    display_phone_number = Column(String, nullable=True)
    # Account id (WABA): fallback lookup key, used to backfill phone_number_id.
    waba_id = Column(String, index=True, nullable=True)
    access_token = Column(String, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tenant = relationship("Tenant")

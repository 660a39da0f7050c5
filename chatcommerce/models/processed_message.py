from sqlalchemy import Column, DateTime, Integer, String, func

from chatcommerce.core.database import Base


class ProcessedMessage(Base):
    __tablename__ = "processed_messages"

    # Platform message id (wamid); the insert is the dedupe claim.
    message_id = Column(String, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from invite_gate.database import Base


class CodeUsage(Base):
    __tablename__ = "code_usages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # One usage per email across every invite code
    user_email = Column(String, unique=True, index=True, nullable=False)
    invite_code_id = Column(String, ForeignKey("invite_codes.id"), index=True, nullable=False)
    ip_address = Column(String, nullable=True)
    device_info = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now())

import uuid

from sqlalchemy import Column, String, Integer, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func

from invite_gate.database import Base


class InviteCode(Base):
    __tablename__ = "invite_codes"
    __table_args__ = (
        CheckConstraint("max_uses BETWEEN 1 AND 100", name="ck_invite_codes_max_uses"),
        CheckConstraint("current_uses >= 0 AND current_uses <= max_uses", name="ck_invite_codes_current_uses"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(8), unique=True, index=True, nullable=False)
    creator_email = Column(String, nullable=False)
    max_uses = Column(Integer, nullable=False)
    current_uses = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def remaining_uses(self) -> int:
        return self.max_uses - self.current_uses

    @property
    def is_redeemable(self) -> bool:
        return bool(self.is_active) and self.current_uses < self.max_uses

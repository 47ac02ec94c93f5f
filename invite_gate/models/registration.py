import uuid

from sqlalchemy import Column, String, BigInteger, DateTime, Enum
from sqlalchemy.sql import func

from invite_gate.database import Base
from invite_gate.schemas.registration import RegistrationType


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    wallet_address = Column(String, unique=True, index=True, nullable=False)
    # Empty for NFT registrations
    invite_code = Column(String, nullable=False, default="")
    signature = Column(String, nullable=False)
    registration_type = Column(Enum(RegistrationType, name="registrationtype"), nullable=False, default=RegistrationType.INVITE_CODE)
    token_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

WALLET_PATTERN = r"^0x[0-9a-fA-F]{40}$"


class RegistrationType(str, Enum):
    NFT = "NFT"
    INVITE_CODE = "INVITE_CODE"


class ReserveInviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(min_length=8, max_length=8)
    email: EmailStr
    wallet_address: str = Field(alias="walletAddress", pattern=WALLET_PATTERN)
    signature: str = Field(min_length=1)


class RegisterNftRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    wallet_address: str = Field(alias="walletAddress", pattern=WALLET_PATTERN)
    token_id: int = Field(alias="tokenId", ge=0, le=2**63 - 1)
    signature: str = Field(min_length=1)


class ReservationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    registration_id: str = Field(alias="registrationId")


class AvailabilityResponse(BaseModel):
    """Shape shared by the verifyCode / isEmailUsed / isWalletUsed checks."""
    success: bool
    message: Optional[str] = None

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InviteCodeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    creator_email: EmailStr = Field(alias="creatorEmail")
    max_uses: int = Field(alias="maxUses", ge=1, le=100)


class InviteCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    code: str
    creator_email: str = Field(alias="creatorEmail")
    max_uses: int = Field(alias="maxUses")
    current_uses: int = Field(alias="currentUses")
    is_active: bool = Field(alias="isActive")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class CodeUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_email: str = Field(alias="userEmail")
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    device_info: Optional[Dict[str, Any]] = Field(default=None, alias="deviceInfo")
    used_at: Optional[datetime] = Field(default=None, alias="usedAt")


class InviteCodeStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    usage_count: int = Field(alias="usageCount")
    remaining_uses: int = Field(alias="remainingUses")
    usages: List[CodeUsageResponse] = []

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EligibilityStatus(BaseModel):
    """
    Result of a staking eligibility check.

    remaining_time is the number of seconds left before a staked token meets
    the staking requirement. It is None when the token is not staked at all.
    """
    model_config = ConfigDict(populate_by_name=True)

    is_eligible: bool = Field(alias="isEligible")
    remaining_time: Optional[int] = Field(default=None, alias="remainingTime")


class StakeInfo(BaseModel):
    is_staked: bool
    timestamp: int

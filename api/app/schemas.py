from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Literal, Optional, List

class RewardPublic(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    reward_type: Optional[str] = None
    value: Optional[float] = None
    active: bool
    class Config:
        from_attributes = True

class AwardOut(BaseModel):
    id: int
    reward_id: int
    claim_code: str
    status: Literal["pending", "claimed", "expired"]
    created_at: datetime
    expires_at: datetime
    claimed_at: Optional[datetime] = None
    reward: RewardPublic

class SpinResponse(BaseModel):
    success: bool
    reward: RewardPublic
    message: str
    claim_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_reward: Optional[AwardOut] = None
    attempts_used: int
    remaining_spins: int

class ClaimRequest(BaseModel):
    claim_code: str = Field(min_length=1)

class ClaimResponse(BaseModel):
    message: str
    reward: AwardOut

class RemainingSpinsResponse(BaseModel):
    remaining_spins: int
    total_daily_spins: int
    spins_used_today: int
    last_spin: Optional[datetime] = None
    can_spin_today: bool

class SpinAttemptOut(BaseModel):
    attempt_date: date
    attempts_count: int
    last_attempt: datetime
    class Config:
        from_attributes = True

class UserStatsResponse(BaseModel):
    total_spins: int
    total_wins: int
    pending_rewards: int
    claimed_rewards: int
    expired_rewards: int

class AdminLoginRequest(BaseModel):
    password: str

class AdminLoginResponse(BaseModel):
    token: str

class RewardIn(BaseModel):
    id: Optional[int] = None
    name: str = Field(min_length=1)
    description: Optional[str] = None
    reward_type: Optional[str] = None
    value: Optional[float] = None
    weight: float = Field(ge=0, default=0)
    total_available: Optional[int] = Field(default=None, ge=0)
    active: bool = True

class RewardAdminOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    reward_type: Optional[str] = None
    value: Optional[float] = None
    weight: float
    total_available: Optional[int] = None
    total_claimed: int
    active: bool
    class Config:
        from_attributes = True

class RewardsSetRequest(BaseModel):
    rewards: List[RewardIn]

class RewardsSetResponse(BaseModel):
    ok: bool
    created: int
    updated: int
    deactivated: int
    message: str

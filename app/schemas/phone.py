from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# Request schemas
class PhoneVerifyRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)


class PhoneCompleteRequest(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)
    token: str = Field(..., min_length=8, max_length=16)


class PhoneCompareRequest(BaseModel):
    phone_a: str = Field(..., max_length=32)
    phone_b: str = Field(..., max_length=32)


# Response schemas
class PhoneVerifyResponse(BaseModel):
    token: str
    phone_number: str
    expires_at: datetime
    instructions: str


class MatchResponse(BaseModel):
    match: bool
    exact_match: bool
    partial_match: bool
    reason: str
    normalized_a: str
    normalized_b: str


class LinkResponse(BaseModel):
    success: bool
    message: str
    already_linked: bool = False
    security_level: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    linked_at: Optional[datetime] = None


class LinkInfoResponse(BaseModel):
    is_linked: bool
    telegram_chat_id: Optional[str] = None
    phone: Optional[str] = None
    phone_verified: bool
    linked_at: Optional[datetime] = None


class SecurityStatsResponse(BaseModel):
    total_failed_attempts: int
    currently_blocked: int
    active_tracking: int
    active_verification_tokens: int

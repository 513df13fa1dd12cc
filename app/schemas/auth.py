from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


PrincipalKindType = Literal["user", "admin"]


# Request schemas
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    kind: PrincipalKindType = Field(default="user", description="'user' for patients, 'admin' for clinic staff")


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class OtpVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=12)


# Response schemas
class PrincipalResponse(BaseModel):
    id: int
    kind: PrincipalKindType
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    phone_verified: bool = False
    telegram_linked: bool = False
    created_at: datetime

    @classmethod
    def from_principal(cls, principal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            kind=principal.principal_kind,
            full_name=principal.full_name,
            email=principal.email,
            phone=principal.phone,
            role=principal.role,
            phone_verified=bool(principal.phone_verified),
            telegram_linked=bool(principal.telegram_chat_id),
            created_at=principal.created_at,
        )


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    principal: PrincipalResponse


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class OtpRequestResponse(BaseModel):
    sent: bool
    expires_in: int
    channel: Optional[str] = None


class MessageResponse(BaseModel):
    message: str

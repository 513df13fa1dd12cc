from fastapi import APIRouter, Depends, Request

from app.api.deps import (
    get_auth_service,
    get_bearer_token,
    get_client_ip,
    get_current_principal,
)
from app.core.exceptions import ValidationError
from app.core.rate_limit import limiter, public_limiter
from app.core.sanitization import sanitize_email, validate_email
from app.schemas.auth import (
    AccessTokenResponse,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    OtpRequestResponse,
    OtpVerifyRequest,
    PrincipalResponse,
    RefreshTokenRequest,
)
from app.services.auth_service import AuthService
from app.services.principal_store import Principal, PrincipalKind


router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=AuthResponse)
@public_limiter.limit("10/minute")
def login(
    request: Request,
    data: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Authenticate a patient or staff member and return a token pair."""
    email = sanitize_email(data.email)
    if not validate_email(email):
        raise ValidationError("Invalid email format")

    principal, pair = auth.login(email, data.password, PrincipalKind(data.kind))

    return AuthResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        principal=PrincipalResponse.from_principal(principal),
    )


@router.post("/refresh", response_model=AccessTokenResponse)
@public_limiter.limit("30/minute")
def refresh_token(
    request: Request,
    data: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new access token.
    The refresh token stays valid until it expires or the principal logs out.
    """
    access_token = auth.refresh(data.refresh_token)
    return AccessTokenResponse(
        access_token=access_token,
        expires_in=int(auth.tokens.access_ttl.total_seconds()),
    )


@router.post("/logout", response_model=MessageResponse)
@limiter.limit("30/minute")
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke the presented access token and delete the refresh token."""
    auth.logout(principal, token)
    return MessageResponse(message="Successfully logged out")


@router.get("/me", response_model=PrincipalResponse)
def get_me(principal: Principal = Depends(get_current_principal)):
    return PrincipalResponse.from_principal(principal)


@router.post("/otp/request", response_model=OtpRequestResponse)
@limiter.limit("5/minute")
def request_otp(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    """Issue a one-time passcode, replacing any pending one."""
    delivery = auth.request_otp(principal)
    return OtpRequestResponse(
        sent=delivery.sent,
        expires_in=delivery.expires_in,
        channel=delivery.channel,
    )


@router.post("/otp/verify", response_model=MessageResponse)
@limiter.limit("10/minute")
def verify_otp(
    request: Request,
    data: OtpVerifyRequest,
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    """Check a passcode. Repeated wrong codes block the account for a while."""
    auth.verify_otp(principal, data.code.strip(), get_client_ip(request))
    return MessageResponse(message="Code verified")

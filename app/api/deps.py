from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.exceptions import ForbiddenError, InvalidTokenError
from app.services.account_linking_service import AccountLinkingService
from app.services.auth_service import AuthService
from app.services.credential_store import CredentialStore
from app.services.messaging.base import MessagingPlatform
from app.services.number_matching import NumberMatcher
from app.services.otp_service import OtpService
from app.services.phone_verification_flow import PhoneVerificationFlow
from app.services.phone_verification_service import PhoneVerificationService
from app.services.principal_store import Principal, PrincipalKind, PrincipalRef, PrincipalStore
from app.services.security_guard import SecurityGuard
from app.services.telegram_bot import TelegramBotHandler
from app.services.token_service import SessionTokenService


# HTTP Bearer token scheme; missing credentials are reported as TOKEN_INVALID
security = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Process-wide objects built in the lifespan

def get_verification_service(request: Request) -> PhoneVerificationService:
    return request.app.state.verification_service


def get_security_guard(request: Request) -> SecurityGuard:
    return request.app.state.security_guard


def get_messaging(request: Request) -> MessagingPlatform:
    return request.app.state.messaging


def get_number_matcher(request: Request) -> NumberMatcher:
    return request.app.state.number_matcher


# Per-request services

def get_principal_store(db: Session = Depends(get_db)) -> PrincipalStore:
    return PrincipalStore(db)


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_token_service(
    store: CredentialStore = Depends(get_credential_store),
    principals: PrincipalStore = Depends(get_principal_store),
) -> SessionTokenService:
    return SessionTokenService(store, principals)


def get_auth_service(
    principals: PrincipalStore = Depends(get_principal_store),
    tokens: SessionTokenService = Depends(get_token_service),
    store: CredentialStore = Depends(get_credential_store),
    messaging: MessagingPlatform = Depends(get_messaging),
    guard: SecurityGuard = Depends(get_security_guard),
) -> AuthService:
    return AuthService(principals, tokens, OtpService(store), messaging, guard)


def get_linking_service(
    principals: PrincipalStore = Depends(get_principal_store),
    matcher: NumberMatcher = Depends(get_number_matcher),
) -> AccountLinkingService:
    return AccountLinkingService(principals, matcher)


def get_phone_flow(
    verification: PhoneVerificationService = Depends(get_verification_service),
    linking: AccountLinkingService = Depends(get_linking_service),
    guard: SecurityGuard = Depends(get_security_guard),
    messaging: MessagingPlatform = Depends(get_messaging),
) -> PhoneVerificationFlow:
    return PhoneVerificationFlow(verification, linking, guard, messaging)


def get_telegram_bot(
    flow: PhoneVerificationFlow = Depends(get_phone_flow),
    messaging: MessagingPlatform = Depends(get_messaging),
) -> TelegramBotHandler:
    return TelegramBotHandler(flow, messaging)


# Authentication

def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise InvalidTokenError("Not authenticated")
    return credentials.credentials


def get_current_principal(
    request: Request,
    token: str = Depends(get_bearer_token),
    tokens: SessionTokenService = Depends(get_token_service),
    principals: PrincipalStore = Depends(get_principal_store),
) -> Principal:
    """
    Resolve the bearer token to an active user or admin.
    Expired tokens raise TOKEN_EXPIRED; bad or revoked ones TOKEN_INVALID.
    """
    payload = tokens.authenticate(token)

    try:
        ref = PrincipalRef(PrincipalKind(payload.get("kind")), int(payload.get("sub")))
    except (TypeError, ValueError):
        raise InvalidTokenError("Could not validate credentials")

    principal = principals.find_by_id(ref)
    if principal is None or not principal.is_active:
        raise InvalidTokenError("Could not validate credentials")

    request.state.principal = principal
    return principal


def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Clinic staff (doctor or secretary) only."""
    if principal.principal_kind != PrincipalKind.ADMIN.value:
        raise ForbiddenError("Staff access required")
    return principal


def get_client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

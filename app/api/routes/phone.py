from fastapi import APIRouter, Depends, Request

from app.api.deps import (
    get_client_ip,
    get_current_principal,
    get_linking_service,
    get_number_matcher,
    get_phone_flow,
    get_security_guard,
    get_verification_service,
    require_admin,
)
from app.core.exceptions import ValidationError
from app.core.rate_limit import limiter
from app.core.sanitization import (
    sanitize_phone,
    sanitize_verification_token,
    validate_phone_chars,
    validate_verification_token,
)
from app.schemas.phone import (
    LinkInfoResponse,
    LinkResponse,
    MatchResponse,
    PhoneCompareRequest,
    PhoneCompleteRequest,
    PhoneVerifyRequest,
    PhoneVerifyResponse,
    SecurityStatsResponse,
)
from app.services.account_linking_service import AccountLinkingService, LinkResult
from app.services.number_matching import NumberMatcher
from app.services.phone_verification_flow import PhoneVerificationFlow
from app.services.phone_verification_service import PhoneVerificationService
from app.services.principal_store import Principal, PrincipalRef
from app.services.security_guard import SecurityGuard


router = APIRouter(prefix="/phone", tags=["Phone Verification"])


def _clean_phone(value: str) -> str:
    phone = sanitize_phone(value)
    if not validate_phone_chars(phone):
        raise ValidationError("Invalid phone number format")
    return phone


def _link_response(result: LinkResult) -> LinkResponse:
    return LinkResponse(
        success=result.success,
        message=result.message,
        already_linked=result.already_linked,
        security_level=result.security_level,
        telegram_chat_id=result.handle,
        linked_at=result.linked_at,
    )


@router.post("/verify", response_model=PhoneVerifyResponse)
@limiter.limit("5/minute")
def start_phone_verification(
    request: Request,
    data: PhoneVerifyRequest,
    principal: Principal = Depends(get_current_principal),
    flow: PhoneVerificationFlow = Depends(get_phone_flow),
):
    """Issue a short code to send to the Telegram bot with /verify."""
    start = flow.initiate(_clean_phone(data.phone), principal, get_client_ip(request))
    return PhoneVerifyResponse(
        token=start.token,
        phone_number=start.phone_number,
        expires_at=start.expires_at,
        instructions=start.instructions,
    )


@router.post("/complete", response_model=LinkResponse)
@limiter.limit("10/minute")
def complete_phone_verification(
    request: Request,
    data: PhoneCompleteRequest,
    principal: Principal = Depends(get_current_principal),
    flow: PhoneVerificationFlow = Depends(get_phone_flow),
):
    """
    Re-confirm the number of an account whose Telegram chat is already linked.
    New links are only made by sending /verify to the bot.
    """
    token = sanitize_verification_token(data.token)
    if not validate_verification_token(token):
        raise ValidationError("Invalid verification code format")

    result = flow.complete(
        principal,
        _clean_phone(data.phone),
        token,
        ip=get_client_ip(request),
    )
    return _link_response(result)


@router.post("/compare", response_model=MatchResponse)
@limiter.limit("30/minute")
def compare_numbers(
    request: Request,
    data: PhoneCompareRequest,
    principal: Principal = Depends(get_current_principal),
    matcher: NumberMatcher = Depends(get_number_matcher),
):
    result = matcher.compare(sanitize_phone(data.phone_a), sanitize_phone(data.phone_b))
    return MatchResponse(
        match=result.match,
        exact_match=result.exact_match,
        partial_match=result.partial_match,
        reason=result.reason,
        normalized_a=result.normalized_a,
        normalized_b=result.normalized_b,
    )


@router.get("/link", response_model=LinkInfoResponse)
def get_link(
    principal: Principal = Depends(get_current_principal),
    linking: AccountLinkingService = Depends(get_linking_service),
):
    info = linking.get_link_info(PrincipalRef.of(principal))
    return LinkInfoResponse(
        is_linked=info.is_linked,
        telegram_chat_id=info.handle,
        phone=info.phone,
        phone_verified=info.phone_verified,
        linked_at=info.linked_at,
    )


@router.delete("/link", response_model=LinkResponse)
def unlink(
    principal: Principal = Depends(get_current_principal),
    linking: AccountLinkingService = Depends(get_linking_service),
    guard: SecurityGuard = Depends(get_security_guard),
):
    ref = PrincipalRef.of(principal)
    result = linking.unlink(ref)
    guard.log_security_event("PHONE_UNLINKED", principal=str(ref))
    return _link_response(result)


@router.get("/security-stats", response_model=SecurityStatsResponse)
def security_stats(
    admin: Principal = Depends(require_admin),
    guard: SecurityGuard = Depends(get_security_guard),
    verification: PhoneVerificationService = Depends(get_verification_service),
):
    """Failed-attempt tracking counters (staff only)."""
    stats = guard.get_security_stats()
    return SecurityStatsResponse(
        active_verification_tokens=verification.get_active_tokens_count(),
        **stats,
    )

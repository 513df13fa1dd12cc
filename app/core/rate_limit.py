"""Rate limiting configuration using slowapi."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def get_principal_identifier(request: Request) -> str:
    """
    Key for authenticated routes: the principal if the auth dependency has
    resolved one, otherwise the client IP.
    """
    principal = getattr(request.state, "principal", None)
    if principal is not None and getattr(principal, "id", None) is not None:
        return f"{principal.principal_kind}:{principal.id}"
    return get_remote_address(request)


def get_ip_address(request: Request) -> str:
    return get_remote_address(request)


# Authenticated routes
limiter = Limiter(
    key_func=get_principal_identifier,
    default_limits=["300/minute"],
)

# Public routes (login, refresh), stricter
public_limiter = Limiter(
    key_func=get_ip_address,
    default_limits=["60/minute"],
)

from app.models.user import User
from app.models.admin import Admin
from app.models.token_blacklist import BlacklistedToken, RefreshToken
from app.models.otp import OtpCode

__all__ = [
    "User",
    "Admin",
    "BlacklistedToken",
    "RefreshToken",
    "OtpCode",
]

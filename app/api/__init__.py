from app.api.routes.auth import router as auth_router
from app.api.routes.phone import router as phone_router
from app.api.routes.telegram import router as telegram_router

__all__ = ["auth_router", "phone_router", "telegram_router"]

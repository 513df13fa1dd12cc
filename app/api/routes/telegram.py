import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from app.api.deps import get_telegram_bot
from app.core.config import settings
from app.core.exceptions import ForbiddenError
from app.core.security import constant_time_equals
from app.schemas.telegram import TelegramUpdate, WebhookAck
from app.services.telegram_bot import TelegramBotHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["Telegram"])


def verify_webhook_secret(
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
) -> None:
    """Only Telegram knows the secret registered with setWebhook."""
    expected = settings.TELEGRAM_WEBHOOK_SECRET
    if not expected or not x_telegram_bot_api_secret_token:
        raise ForbiddenError("Invalid webhook secret")
    if not constant_time_equals(x_telegram_bot_api_secret_token, expected):
        logger.warning("Rejected Telegram webhook call with a wrong secret")
        raise ForbiddenError("Invalid webhook secret")


@router.post("/webhook", response_model=WebhookAck, dependencies=[Depends(verify_webhook_secret)])
def telegram_webhook(
    update: TelegramUpdate,
    bot: TelegramBotHandler = Depends(get_telegram_bot),
):
    """
    Receive bot updates pushed by Telegram.
    Always acknowledged once authenticated, otherwise Telegram keeps redelivering;
    outcomes are reported to the chat.
    """
    message = update.message
    if message is None or message.chat.type not in (None, "private"):
        return WebhookAck()
    if message.from_user is not None and message.from_user.is_bot:
        return WebhookAck()

    bot.handle_message(message.chat.id, message.text)
    return WebhookAck()

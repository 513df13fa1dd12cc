import logging
from typing import Optional

from app.core.exceptions import ClinicAuthException
from app.core.sanitization import sanitize_verification_token, validate_verification_token
from app.services.account_linking_service import LinkResult
from app.services.messaging.base import MessagingPlatform
from app.services.phone_verification_flow import PhoneVerificationFlow

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Welcome to the clinic bot.\n\n"
    "To link this Telegram account with your clinic account:\n"
    "1. Request a verification code in the clinic app\n"
    "2. Send it here: /verify CODE\n\n"
    "After linking you will receive login codes and notifications here."
)
VERIFY_USAGE = "Send the 8-character code from the clinic app, for example: /verify 1A2B3C4D"
ALREADY_LINKED_MESSAGE = "This Telegram account is already linked to your clinic account."


class TelegramBotHandler:
    """
    Commands received by the clinic bot.

    The chat id arrives in the platform's update, so whoever can send from a
    chat is the owner of that chat. That is what makes /verify the step that
    links the account.
    """

    def __init__(self, flow: PhoneVerificationFlow, messaging: MessagingPlatform):
        self.flow = flow
        self.messaging = messaging

    def reply(self, chat_id: str, text: str) -> None:
        if not self.messaging.send_message(chat_id, text):
            logger.warning(f"Could not reply to chat {chat_id}")

    def handle_message(self, chat_id, text: Optional[str]) -> Optional[LinkResult]:
        handle = str(chat_id)
        command, _, argument = (text or "").strip().partition(" ")
        # "/verify@ClinicBot CODE" in group chats
        command = command.split("@", 1)[0].lower()

        if command == "/verify":
            return self._verify(handle, argument.strip())

        self.reply(handle, WELCOME_MESSAGE)
        return None

    def _verify(self, handle: str, raw_token: str) -> Optional[LinkResult]:
        token = sanitize_verification_token(raw_token) if raw_token else ""
        if not validate_verification_token(token):
            self.reply(handle, VERIFY_USAGE)
            return None

        try:
            result = self.flow.complete_from_chat(handle, token)
        except ClinicAuthException as e:
            logger.info(f"Bot verification failed for chat {handle}: {e.error_code}")
            self.reply(handle, e.detail)
            return None

        if result.already_linked:
            self.reply(handle, ALREADY_LINKED_MESSAGE)
        return result

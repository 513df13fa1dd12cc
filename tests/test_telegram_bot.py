"""Tests for the clinic bot's command handling."""

import pytest

from app.services.telegram_bot import ALREADY_LINKED_MESSAGE, VERIFY_USAGE, WELCOME_MESSAGE


CHAT_ID = 777


@pytest.fixture
def token(phone_flow, user, fake_messaging):
    fake_messaging.phones[str(CHAT_ID)] = user.phone
    return phone_flow.initiate(user.phone, user, "198.51.100.20").token


class TestTelegramBotHandler:
    def test_start_gets_welcome(self, telegram_bot, fake_messaging):
        assert telegram_bot.handle_message(CHAT_ID, "/start") is None
        assert fake_messaging.sent == [("777", WELCOME_MESSAGE)]

    def test_empty_message(self, telegram_bot, fake_messaging):
        telegram_bot.handle_message(CHAT_ID, None)
        assert fake_messaging.sent == [("777", WELCOME_MESSAGE)]

    @pytest.mark.parametrize("text", ["/verify", "/verify nonsense", "/verify <b>12</b>"])
    def test_verify_usage(self, telegram_bot, fake_messaging, text):
        assert telegram_bot.handle_message(CHAT_ID, text) is None
        assert fake_messaging.sent == [("777", VERIFY_USAGE)]

    def test_verify_links_the_sending_chat(self, telegram_bot, token, user, fake_messaging):
        result = telegram_bot.handle_message(CHAT_ID, f"/verify {token.lower()}")

        assert result.success is True
        assert user.telegram_chat_id == "777"
        assert fake_messaging.sent[-1][0] == "777"

    def test_bot_mention_suffix(self, telegram_bot, token, user):
        result = telegram_bot.handle_message(CHAT_ID, f"/verify@ClinicBot {token}")

        assert result.success is True
        assert user.telegram_chat_id == "777"

    def test_failure_is_replied_not_raised(self, telegram_bot, fake_messaging):
        assert telegram_bot.handle_message(CHAT_ID, "/verify ABCDEF12") is None
        assert fake_messaging.sent == [("777", "Verification code is incorrect or no longer exists")]

    def test_foreign_chat_cannot_use_the_code(self, telegram_bot, token, user, fake_messaging):
        fake_messaging.phones["424242"] = "+963955555555"

        assert telegram_bot.handle_message(424242, f"/verify {token}") is None
        assert user.telegram_chat_id is None
        assert fake_messaging.sent[-1][0] == "424242"

    def test_already_linked_account(self, telegram_bot, token, user, principal_store, fake_messaging):
        principal_store.update(user, telegram_chat_id="777")

        result = telegram_bot.handle_message(CHAT_ID, f"/verify {token}")

        assert result.already_linked is True
        assert fake_messaging.sent[-1] == ("777", ALREADY_LINKED_MESSAGE)

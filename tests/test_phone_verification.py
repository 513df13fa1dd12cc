"""Tests for phone verification tokens."""

import re

from app.services.phone_verification_service import VerificationStatus


PHONE = "+963911234567"


class TestVerificationTokens:
    def test_token_format(self, verification_service):
        token = verification_service.issue_verification_token(PHONE)
        assert re.fullmatch(r"[0-9A-F]{8}", token)

    def test_lifecycle(self, verification_service, clock):
        token = verification_service.issue_verification_token(PHONE)

        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.VALID
        assert (
            verification_service.validate_verification_token(token, "+963999999999")
            is VerificationStatus.PHONE_MISMATCH
        )

        clock.advance(seconds=301)
        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.EXPIRED
        # Expired tokens are dropped on sight
        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.NOT_FOUND

    def test_validation_does_not_consume(self, verification_service):
        token = verification_service.issue_verification_token(PHONE)

        verification_service.validate_verification_token(token, PHONE)
        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.VALID

        assert verification_service.remove_verification_token(token) is True
        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.NOT_FOUND

    def test_phone_formats_are_normalized(self, verification_service):
        token = verification_service.issue_verification_token(PHONE)

        status = verification_service.validate_verification_token(token, "00963 911 234 567")
        assert status is VerificationStatus.VALID

    def test_lowercase_token_accepted(self, verification_service):
        token = verification_service.issue_verification_token(PHONE)
        assert verification_service.validate_verification_token(token.lower(), PHONE) is VerificationStatus.VALID

    def test_last_issued_wins(self, verification_service):
        first = verification_service.issue_verification_token(PHONE)
        second = verification_service.issue_verification_token(PHONE)

        assert verification_service.get_active_tokens_count() == 1
        assert verification_service.validate_verification_token(second, PHONE) is VerificationStatus.VALID
        if first != second:
            assert verification_service.validate_verification_token(first, PHONE) is VerificationStatus.NOT_FOUND

    def test_unknown_token(self, verification_service):
        assert verification_service.validate_verification_token("DEADBEEF", PHONE) is VerificationStatus.NOT_FOUND
        assert verification_service.validate_verification_token("", PHONE) is VerificationStatus.NOT_FOUND

    def test_each_status_has_its_own_message(self):
        messages = {status.message for status in VerificationStatus}
        assert len(messages) == len(VerificationStatus)

    def test_cleanup(self, verification_service, clock):
        verification_service.issue_verification_token(PHONE)
        clock.advance(seconds=200)
        verification_service.issue_verification_token("+963933456789")
        clock.advance(seconds=150)

        assert verification_service.cleanup_expired_tokens() == 1
        assert verification_service.get_active_tokens_count() == 1

    def test_expiry_checked_without_sweep(self, verification_service, clock):
        token = verification_service.issue_verification_token(PHONE)
        clock.advance(seconds=300)

        assert verification_service.validate_verification_token(token, PHONE) is VerificationStatus.EXPIRED

    def test_token_info(self, verification_service, clock):
        token = verification_service.issue_verification_token(PHONE)

        info = verification_service.get_token_info(token)
        assert info["phone_number"] == PHONE
        assert info["is_expired"] is False

        clock.advance(minutes=6)
        assert verification_service.get_token_info(token)["is_expired"] is True
        assert verification_service.get_token_info("00000000") is None

    def test_instructions_mention_token(self, verification_service):
        token = verification_service.issue_verification_token(PHONE)
        instructions = verification_service.get_verification_instructions(token, PHONE)

        assert f"/verify {token}" in instructions
        assert "5 minutes" in instructions

"""Tests for account linking."""

import pytest

from app.core.exceptions import PrincipalNotFoundError, StorageFailureError
from app.services.principal_store import PrincipalKind, PrincipalRef


class TestLinkAccount:
    def test_link_and_info(self, linking_service, user, clock):
        ref = PrincipalRef.of(user)

        result = linking_service.link_account(ref, "777", user.phone)

        assert result.success is True
        assert result.already_linked is False
        info = linking_service.get_link_info(ref)
        assert info.is_linked is True
        assert info.handle == "777"
        assert info.phone_verified is True
        assert info.linked_at == clock()

    def test_existing_link_is_never_overwritten(self, linking_service, user):
        ref = PrincipalRef.of(user)
        linking_service.link_account(ref, "777", user.phone)

        result = linking_service.link_account(ref, "888", user.phone)

        assert result.success is True
        assert result.already_linked is True
        assert linking_service.get_link_info(ref).handle == "777"

    def test_unlink(self, linking_service, user):
        ref = PrincipalRef.of(user)
        linking_service.link_account(ref, "777", user.phone)

        assert linking_service.unlink(ref).success is True
        info = linking_service.get_link_info(ref)
        assert info.is_linked is False
        assert info.phone_verified is False
        assert info.linked_at is None

        # Nothing to unlink
        assert linking_service.unlink(ref).success is True

    def test_admin_links(self, linking_service, admin):
        ref = PrincipalRef.of(admin)
        linking_service.link_account(ref, "999", admin.phone)
        assert linking_service.get_link_info(ref).is_linked is True

    def test_missing_principal(self, linking_service):
        with pytest.raises(PrincipalNotFoundError):
            linking_service.get_link_info(PrincipalRef(PrincipalKind.USER, 404))

    def test_handle_held_by_another_account(self, linking_service, user, admin):
        linking_service.link_account(PrincipalRef.of(admin), "777", admin.phone)

        result = linking_service.link_account(PrincipalRef.of(user), "777", user.phone)

        assert result.success is False
        assert user.telegram_chat_id is None
        assert user.phone_verified is False

    def test_duplicate_handle_rejected_by_database(self, principal_store, user, admin):
        principal_store.update(admin, telegram_chat_id="777")

        with pytest.raises(StorageFailureError):
            principal_store.update(user, telegram_chat_id="777")

    def test_find_by_handle(self, linking_service, principal_store, admin):
        linking_service.link_account(PrincipalRef.of(admin), "999", admin.phone)

        assert principal_store.find_by_telegram_chat_id("999") is admin
        assert principal_store.find_by_telegram_chat_id("123") is None


class TestSecureLinking:
    def test_mismatch_is_low_and_changes_nothing(self, linking_service, user):
        ref = PrincipalRef.of(user)

        result = linking_service.process_secure_linking(ref, user.phone, "777", "+963999999999")

        assert result.success is False
        assert result.security_level == "low"
        assert result.match.match is False
        assert linking_service.get_link_info(ref).is_linked is False

    def test_new_match_is_medium(self, linking_service, user):
        ref = PrincipalRef.of(user)

        result = linking_service.process_secure_linking(ref, "0911234567", "777", "+963911234567")

        assert result.success is True
        assert result.security_level == "medium"
        assert result.match.partial_match is True
        assert linking_service.get_link_info(ref).is_linked is True

    def test_second_call_reports_already_linked(self, linking_service, user, clock):
        ref = PrincipalRef.of(user)
        linking_service.process_secure_linking(ref, user.phone, "777", user.phone)
        linked_at = linking_service.get_link_info(ref).linked_at

        clock.advance(minutes=5)
        result = linking_service.process_secure_linking(ref, user.phone, "777", user.phone)

        assert result.success is True
        assert result.already_linked is True
        assert result.security_level == "high"
        info = linking_service.get_link_info(ref)
        assert info.handle == "777"
        assert info.linked_at == linked_at

    def test_verify_secure_linking_persists_nothing(self, linking_service, user):
        result = linking_service.verify_secure_linking(user.phone, user.phone)

        assert result.exact_match is True
        assert linking_service.get_link_info(PrincipalRef.of(user)).is_linked is False

"""Tests for the credential store."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.clock import utcnow
from app.core.exceptions import InvalidPrincipalError, StorageFailureError
from app.core.security import hash_token
from app.models import BlacklistedToken, OtpCode, RefreshToken
from app.services.credential_store import CredentialStore
from app.services.principal_store import PrincipalKind, PrincipalRef


class TestRefreshTokens:
    """One row per principal, replaced in place."""

    def test_store_and_find(self, credential_store, user):
        owner = PrincipalRef.of(user)
        credential_store.store_refresh_token(owner, "token-a", utcnow() + timedelta(days=7))

        record = credential_store.find_refresh_token("token-a")
        assert record is not None
        assert record.user_id == user.id
        assert record.admin_id is None
        assert record.token_hash == hash_token("token-a")

    def test_token_is_not_stored_in_clear(self, credential_store, db_session, user):
        credential_store.store_refresh_token(PrincipalRef.of(user), "secret-token", utcnow() + timedelta(days=7))

        row = db_session.query(RefreshToken).one()
        assert "secret-token" not in row.token_hash

    def test_second_store_replaces_first(self, credential_store, db_session, user):
        owner = PrincipalRef.of(user)
        expires = utcnow() + timedelta(days=7)
        credential_store.store_refresh_token(owner, "token-a", expires)
        credential_store.store_refresh_token(owner, "token-b", expires)

        assert db_session.query(RefreshToken).count() == 1
        assert credential_store.find_refresh_token("token-a") is None
        assert credential_store.find_refresh_token("token-b") is not None

    def test_user_and_admin_with_same_id_are_separate(self, credential_store, db_session, user, admin):
        expires = utcnow() + timedelta(days=7)
        credential_store.store_refresh_token(PrincipalRef(PrincipalKind.USER, 1), "user-token", expires)
        credential_store.store_refresh_token(PrincipalRef(PrincipalKind.ADMIN, 1), "admin-token", expires)

        assert db_session.query(RefreshToken).count() == 2
        assert credential_store.find_refresh_token("admin-token").admin_id == 1

    def test_delete_for_owner(self, credential_store, user):
        owner = PrincipalRef.of(user)
        credential_store.store_refresh_token(owner, "token-a", utcnow() + timedelta(days=7))

        assert credential_store.delete_refresh_tokens_for(owner) == 1
        assert credential_store.find_refresh_token_for(owner) is None
        assert credential_store.delete_refresh_tokens_for(owner) == 0

    def test_delete_by_token(self, credential_store, user):
        credential_store.store_refresh_token(PrincipalRef.of(user), "token-a", utcnow() + timedelta(days=7))

        assert credential_store.delete_refresh_token("token-a") is True
        assert credential_store.delete_refresh_token("token-a") is False

    def test_cleanup_expired(self, credential_store, user, admin):
        now = utcnow()
        credential_store.store_refresh_token(PrincipalRef.of(user), "old", now - timedelta(seconds=1))
        credential_store.store_refresh_token(PrincipalRef.of(admin), "live", now + timedelta(days=1))

        assert credential_store.cleanup_expired_refresh_tokens(now) == 1
        assert credential_store.find_refresh_token("old") is None
        assert credential_store.find_refresh_token("live") is not None


class TestBlacklist:
    def test_blacklist_is_idempotent(self, credential_store, db_session):
        now = utcnow()
        assert credential_store.blacklist_token("access", now + timedelta(minutes=15), now) is True
        assert credential_store.blacklist_token("access", now + timedelta(minutes=15), now) is False

        assert db_session.query(BlacklistedToken).count() == 1
        assert credential_store.is_token_blacklisted("access") is True
        assert credential_store.is_token_blacklisted("other") is False

    def test_cleanup_spares_recent_entries(self, credential_store):
        now = utcnow()
        credential_store.blacklist_token("old", now - timedelta(hours=2), now - timedelta(hours=3))
        credential_store.blacklist_token("recent", now - timedelta(minutes=1), now - timedelta(minutes=10))

        removed = credential_store.cleanup_expired_blacklisted_tokens(
            now=now, keep_created_after=now - timedelta(minutes=60)
        )

        assert removed == 1
        assert credential_store.is_token_blacklisted("old") is False
        assert credential_store.is_token_blacklisted("recent") is True


class TestOtpRecords:
    def test_store_replaces_previous(self, credential_store, db_session, user):
        owner = PrincipalRef.of(user)
        now = utcnow()
        credential_store.store_otp(owner, "111111", now + timedelta(minutes=15), now)
        credential_store.store_otp(owner, "222222", now + timedelta(minutes=15), now)

        assert db_session.query(OtpCode).count() == 1
        assert credential_store.find_otp(owner).otp_code == "222222"

    def test_delete_is_noop_when_gone(self, credential_store, second_session, user):
        owner = PrincipalRef.of(user)
        now = utcnow()
        credential_store.store_otp(owner, "111111", now + timedelta(minutes=15), now)
        stale = CredentialStore(second_session).find_otp(owner)

        assert credential_store.delete_otp(credential_store.find_otp(owner)) is True
        assert CredentialStore(second_session).delete_otp(stale) is False

    def test_delete_leaves_a_replacement_code(self, credential_store, second_session, user):
        owner = PrincipalRef.of(user)
        now = utcnow()
        credential_store.store_otp(owner, "111111", now + timedelta(minutes=15), now)
        stale = CredentialStore(second_session).find_otp(owner)
        credential_store.store_otp(owner, "222222", now + timedelta(minutes=15), now)

        assert CredentialStore(second_session).delete_otp(stale) is False
        assert credential_store.find_otp(owner).otp_code == "222222"

    def test_cleanup_expired(self, credential_store, user, admin):
        now = utcnow()
        credential_store.store_otp(PrincipalRef.of(user), "111111", now - timedelta(seconds=1), now)
        credential_store.store_otp(PrincipalRef.of(admin), "222222", now + timedelta(minutes=5), now)

        assert credential_store.cleanup_expired_otps(now) == 1
        assert credential_store.find_otp(PrincipalRef.of(user)) is None


class TestPrincipalRef:
    def test_requires_an_id(self, user):
        with pytest.raises(InvalidPrincipalError):
            PrincipalRef.of(type(user)(full_name="No Id"))

    def test_from_owner_requires_exactly_one(self):
        with pytest.raises(InvalidPrincipalError):
            PrincipalRef.from_owner(None, None)
        with pytest.raises(InvalidPrincipalError):
            PrincipalRef.from_owner(1, 2)
        assert PrincipalRef.from_owner(None, 3) == PrincipalRef(PrincipalKind.ADMIN, 3)


class TestStorageFailure:
    def test_database_error_becomes_storage_failure(self, credential_store, db_session, monkeypatch, user):
        def broken_execute(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "execute", broken_execute)

        with pytest.raises(StorageFailureError) as exc_info:
            credential_store.store_refresh_token(PrincipalRef.of(user), "token", utcnow() + timedelta(days=1))

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestInterleavedIssuance:
    """Two workers issuing for the same principal from separate sessions."""

    def test_refresh_tokens_leave_one_row(self, credential_store, second_session, db_session, user):
        owner = PrincipalRef.of(user)
        other = CredentialStore(second_session)
        expires = utcnow() + timedelta(days=7)

        # Neither worker sees a row before writing
        assert other.find_refresh_token_for(owner) is None
        credential_store.store_refresh_token(owner, "token-a", expires)
        other.store_refresh_token(owner, "token-b", expires)

        assert db_session.query(RefreshToken).count() == 1
        assert credential_store.find_refresh_token("token-a") is None
        assert credential_store.find_refresh_token("token-b").user_id == user.id

    def test_otps_leave_one_row(self, credential_store, second_session, db_session, user):
        owner = PrincipalRef.of(user)
        other = CredentialStore(second_session)
        now = utcnow()

        assert other.find_otp(owner) is None
        credential_store.store_otp(owner, "111111", now + timedelta(minutes=15), now)
        other.store_otp(owner, "222222", now + timedelta(minutes=15), now)

        assert db_session.query(OtpCode).count() == 1
        assert credential_store.find_otp(owner).otp_code == "222222"

"""Pytest configuration and fixtures."""

import os
from datetime import timedelta
from types import SimpleNamespace

# Set test environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-32chars")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("TELEGRAM_WEBHOOK_SECRET", "test-webhook-secret")

# Disable rate limiting for tests by monkey-patching BEFORE imports
from slowapi import Limiter
from slowapi.util import get_remote_address

# Create disabled limiters
_disabled_limiter = Limiter(key_func=get_remote_address, enabled=False)

# Patch the rate_limit module before it's imported elsewhere
import app.core.rate_limit as rate_limit_module
rate_limit_module.limiter = _disabled_limiter
rate_limit_module.public_limiter = _disabled_limiter

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.clock import utcnow
from app.core.database import Base
from app.core.security import get_password_hash
from app.api.deps import get_db
from app.models import Admin, User
from app.services.account_linking_service import AccountLinkingService
from app.services.credential_store import CredentialStore
from app.services.messaging.base import MessagingPlatform
from app.services.number_matching import NumberMatcher
from app.services.otp_service import OtpService
from app.services.phone_verification_flow import PhoneVerificationFlow
from app.services.phone_verification_service import PhoneVerificationService, VerificationTokenStore
from app.services.principal_store import PrincipalStore
from app.services.security_guard import FailedAttemptStore, SecurityGuard
from app.services.telegram_bot import TelegramBotHandler
from app.services.token_service import SessionTokenService
from main import app

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "Password123"
WEBHOOK_SECRET = "test-webhook-secret"


class FakeClock:
    """Callable clock pinned to a fixed instant until advanced."""

    def __init__(self, start=None):
        self.now = start or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeScheduler:
    """Records add_job calls; jobs run only when a test says so."""

    def __init__(self):
        self.jobs = {}

    def add_job(self, func, trigger=None, args=None, id=None, replace_existing=False, **kwargs):
        self.jobs[id] = SimpleNamespace(func=func, trigger=trigger, args=list(args or []), kwargs=kwargs)

    def run(self, job_id):
        job = self.jobs.pop(job_id)
        job.func(*job.args)


class FakeMessaging(MessagingPlatform):
    def __init__(self):
        self.phones = {}
        self.sent = []

    def send_message(self, handle, text):
        self.sent.append((handle, text))
        return True

    def get_verified_phone_number(self, handle):
        return self.phones.get(handle)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def second_session(db_session):
    """Another session on the same database, as a second worker would hold."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def fake_messaging():
    return FakeMessaging()


@pytest.fixture
def client(db_session, fake_scheduler, fake_messaging):
    """Create a test client with database and external-service overrides."""
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as test_client:
        app.state.messaging = fake_messaging
        app.state.security_guard = SecurityGuard(FailedAttemptStore(), fake_scheduler)
        yield test_client
    app.dependency_overrides.clear()


# Principals

@pytest.fixture
def user(db_session):
    user = User(
        full_name="Test Patient",
        email="patient@example.com",
        phone="+963911234567",
        password_hash=get_password_hash(TEST_PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin(db_session):
    admin = Admin(
        full_name="Test Doctor",
        email="doctor@example.com",
        phone="+963922345678",
        password_hash=get_password_hash(TEST_PASSWORD),
        role="doctor",
    )
    db_session.add(admin)
    db_session.commit()
    db_session.refresh(admin)
    return admin


@pytest.fixture
def user_credentials(user):
    return {"email": "patient@example.com", "password": TEST_PASSWORD}


@pytest.fixture
def auth_headers(client, user_credentials):
    response = client.post("/api/auth/login", json=user_credentials)
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


# Services

@pytest.fixture
def credential_store(db_session):
    return CredentialStore(db_session)


@pytest.fixture
def principal_store(db_session):
    return PrincipalStore(db_session)


@pytest.fixture
def token_service(credential_store, principal_store, clock):
    return SessionTokenService(credential_store, principal_store, clock=clock)


@pytest.fixture
def otp_service(credential_store, clock):
    return OtpService(credential_store, clock=clock)


@pytest.fixture
def matcher():
    return NumberMatcher(country_code="963", partial_digits=7)


@pytest.fixture
def verification_service(matcher, clock):
    return PhoneVerificationService(
        VerificationTokenStore(),
        matcher,
        ttl=timedelta(seconds=300),
        clock=clock,
    )


@pytest.fixture
def guard(fake_scheduler, clock):
    return SecurityGuard(
        FailedAttemptStore(),
        fake_scheduler,
        max_attempts=5,
        block_duration=timedelta(minutes=30),
        abuse_window=timedelta(hours=1),
        phone_threshold=3,
        ip_threshold=5,
        principal_threshold=3,
        record_retention=timedelta(hours=24),
        clock=clock,
    )


@pytest.fixture
def linking_service(principal_store, matcher, clock):
    return AccountLinkingService(principal_store, matcher, clock=clock)


@pytest.fixture
def phone_flow(verification_service, linking_service, guard, fake_messaging):
    return PhoneVerificationFlow(verification_service, linking_service, guard, fake_messaging)


@pytest.fixture
def telegram_bot(phone_flow, fake_messaging):
    return TelegramBotHandler(phone_flow, fake_messaging)


@pytest.fixture
def webhook_headers():
    return {"X-Telegram-Bot-Api-Secret-Token": WEBHOOK_SECRET}

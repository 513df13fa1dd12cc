import logging

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from app.core.exceptions import StorageFailureError

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(
    jobstores={"default": MemoryJobStore()},
    job_defaults={"coalesce": True, "max_instances": 1},
    timezone="UTC",
)


def sweep_blacklisted_tokens():
    """Drop expired blacklist entries past the retention window."""
    from app.core.database import SessionLocal
    from app.services.credential_store import CredentialStore
    from app.services.principal_store import PrincipalStore
    from app.services.token_service import SessionTokenService

    db = SessionLocal()
    try:
        SessionTokenService(CredentialStore(db), PrincipalStore(db)).cleanup_expired_blacklisted_tokens()
    except StorageFailureError as e:
        logger.error(f"Blacklist sweep failed: {e.detail}")
    finally:
        db.close()


def sweep_refresh_tokens_and_otps():
    """Drop expired refresh tokens and one-time passcodes."""
    from app.core.database import SessionLocal
    from app.services.credential_store import CredentialStore
    from app.services.otp_service import OtpService
    from app.services.principal_store import PrincipalStore
    from app.services.token_service import SessionTokenService

    db = SessionLocal()
    try:
        store = CredentialStore(db)
        SessionTokenService(store, PrincipalStore(db)).cleanup_expired_refresh_tokens()
        OtpService(store).cleanup_expired_otps()
    except StorageFailureError as e:
        logger.error(f"Credential sweep failed: {e.detail}")
    finally:
        db.close()


def register_cleanup_jobs(verification, guard, target: BackgroundScheduler = scheduler):
    """
    Schedule the periodic sweeps. `verification` and `guard` are the
    process-wide PhoneVerificationService and SecurityGuard instances.
    """
    target.add_job(
        sweep_blacklisted_tokens,
        "cron",
        day_of_week="sun",
        hour=2,
        minute=0,
        id="sweep_blacklisted_tokens",
        replace_existing=True,
    )
    target.add_job(
        sweep_refresh_tokens_and_otps,
        "interval",
        hours=1,
        id="sweep_refresh_tokens_and_otps",
        replace_existing=True,
    )
    target.add_job(
        verification.cleanup_expired_tokens,
        "interval",
        minutes=1,
        id="sweep_verification_tokens",
        replace_existing=True,
    )
    target.add_job(
        guard.cleanup_old_records,
        "interval",
        hours=1,
        id="cleanup_security_records",
        replace_existing=True,
    )
    logger.info("Registered credential cleanup jobs")


def start_scheduler():
    if not scheduler.running:
        scheduler.start()
        logger.info("APScheduler started for credential cleanup")


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler shut down")

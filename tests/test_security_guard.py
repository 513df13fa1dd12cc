"""Tests for failed-attempt tracking and blocking."""

from datetime import timedelta

from app.core.clock import as_aware


IP = "203.0.113.7"


class TestBlocking:
    def test_blocks_exactly_at_threshold(self, guard):
        for expected in range(1, 5):
            result = guard.record_failed_attempt(IP, "bad token")
            assert result.blocked is False
            assert result.attempt_number == expected
            assert result.remaining_attempts == 5 - expected
        assert guard.is_blocked(IP) is False

        result = guard.record_failed_attempt(IP, "bad token")

        assert result.blocked is True
        assert result.remaining_attempts == 0
        assert result.block_duration == timedelta(minutes=30)
        assert guard.is_blocked(IP) is True

    def test_unblock_is_scheduled(self, guard, fake_scheduler, clock):
        for _ in range(5):
            guard.record_failed_attempt(IP, "bad token")

        job = fake_scheduler.jobs[f"unblock:{IP}"]
        assert job.trigger == "date"
        assert job.kwargs["run_date"] == as_aware(clock() + timedelta(minutes=30))

        fake_scheduler.run(f"unblock:{IP}")
        assert guard.is_blocked(IP) is False

    def test_block_survives_cleanup(self, guard, clock):
        for _ in range(5):
            guard.record_failed_attempt(IP, "bad token")

        clock.advance(hours=25)
        guard.cleanup_old_records()

        assert guard.is_blocked(IP) is True

    def test_old_attempts_leave_the_window(self, guard, clock):
        for _ in range(4):
            guard.record_failed_attempt(IP, "bad token")
        clock.advance(minutes=31)

        result = guard.record_failed_attempt(IP, "bad token")

        assert result.blocked is False
        assert result.attempt_number == 1

    def test_clear_failed_attempts(self, guard):
        for _ in range(4):
            guard.record_failed_attempt(IP, "bad token")

        guard.clear_failed_attempts(IP)

        assert guard.record_failed_attempt(IP, "bad token").attempt_number == 1

    def test_manual_unblock(self, guard):
        guard.block_user(IP)
        assert guard.is_blocked(IP) is True

        guard.unblock(IP)
        assert guard.is_blocked(IP) is False

    def test_identifiers_are_independent(self, guard):
        for _ in range(5):
            guard.record_failed_attempt(IP, "bad token")

        assert guard.is_blocked("user:1") is False
        assert guard.is_blocked(None) is False


class TestAbuseDetection:
    def test_low_risk_without_failures(self, guard):
        report = guard.detect_verification_abuse("+963911234567", IP, "user:1")

        assert report.abusive is False
        assert report.risk_level == "low"
        assert report.indicators == []

    def test_single_indicator_is_medium(self, guard):
        for _ in range(4):
            guard.record_failed_attempt("+963911234567", "phone mismatch")

        report = guard.detect_verification_abuse("+963911234567", IP, "user:1")

        assert report.abusive is True
        assert report.risk_level == "medium"
        assert len(report.indicators) == 1

    def test_threshold_is_exclusive(self, guard):
        for _ in range(3):
            guard.record_failed_attempt("+963911234567", "phone mismatch")

        assert guard.detect_verification_abuse("+963911234567", IP).abusive is False

    def test_all_indicators_is_high(self, guard):
        for _ in range(4):
            guard.record_failed_attempt("+963911234567", "phone mismatch")
            guard.record_failed_attempt("user:1", "phone mismatch")
        for _ in range(6):
            guard.record_failed_attempt(IP, "phone mismatch")

        report = guard.detect_verification_abuse("+963911234567", IP, "user:1")

        assert report.risk_level == "high"
        assert len(report.indicators) == 3

    def test_window_is_one_hour(self, guard, clock):
        for _ in range(4):
            guard.record_failed_attempt("+963911234567", "phone mismatch")

        clock.advance(minutes=45)
        assert guard.detect_verification_abuse("+963911234567", IP).abusive is True

        clock.advance(minutes=16)
        assert guard.detect_verification_abuse("+963911234567", IP).abusive is False


class TestRequestGate:
    def test_blocked_ip(self, guard):
        guard.block_user(IP)

        check = guard.check_request(IP, "user:1")

        assert check.valid is False
        assert check.blocked is True

    def test_blocked_principal(self, guard):
        guard.block_user("user:1")

        assert guard.check_request(IP, "user:1").valid is False
        assert guard.check_request(IP, "user:2").valid is True


class TestStats:
    def test_stats_and_cleanup(self, guard, clock):
        guard.record_failed_attempt(IP, "bad token")
        guard.record_failed_attempt("user:1", "bad token")
        guard.block_user("user:2")

        stats = guard.get_security_stats()
        assert stats == {"total_failed_attempts": 2, "currently_blocked": 1, "active_tracking": 2}

        clock.advance(hours=25)
        assert guard.cleanup_old_records() == 2
        assert guard.get_security_stats()["active_tracking"] == 0

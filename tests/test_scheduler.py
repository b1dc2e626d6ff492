"""
Unit tests for decay tables and the revalidation scheduler.
"""
from datetime import datetime, timedelta, timezone

import pytest

from domainlens.errors import TaskQueueError
from domainlens.freshness.core import Section
from domainlens.freshness.decay import (
    apply_decay,
    get_decay_multiplier,
    should_stop_revalidation,
)
from domainlens.freshness.scheduler import RevalidationScheduler
from domainlens.tasks import InMemoryTaskQueue, TaskStatus

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = NOW.timestamp() * 1000
HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def queue():
    return InMemoryTaskQueue()


@pytest.fixture
def scheduler(queue):
    return RevalidationScheduler(queue, clock_ms=lambda: NOW_MS)


class RecordingQueue:
    """Queue double that records submissions or fails on demand."""

    def __init__(self, accept=True, error=None):
        self.accept = accept
        self.error = error
        self.submitted = []

    def submit(self, key, payload, not_before):
        if self.error is not None:
            raise self.error
        self.submitted.append((key, payload, not_before))
        return self.accept


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


# =============================================================================
# Decay Table Tests
# =============================================================================

class TestDecay:

    @pytest.mark.parametrize("days,expected", [
        (0, 1), (2.9, 1), (3, 3), (13, 3), (14, 10), (59, 10), (60, 30), (179, 30),
    ])
    def test_fast_tiers(self, days, expected):
        assert get_decay_multiplier(Section.DNS, days_ago(days), NOW) == expected

    @pytest.mark.parametrize("days,expected", [
        (0, 1), (3, 5), (14, 20), (60, 50), (89, 50),
    ])
    def test_slow_tiers(self, days, expected):
        assert get_decay_multiplier(Section.REGISTRATION, days_ago(days), NOW) == expected

    def test_section_profiles(self):
        for section in (Section.DNS, Section.HEADERS, Section.CERTIFICATES):
            assert get_decay_multiplier(section, days_ago(5), NOW) == 3
        for section in (Section.REGISTRATION, Section.HOSTING, Section.SEO):
            assert get_decay_multiplier(section, days_ago(5), NOW) == 5

    def test_unknown_or_future_access_is_normal_cadence(self):
        assert get_decay_multiplier(Section.DNS, None, NOW) == 1
        assert get_decay_multiplier(Section.DNS, NOW + timedelta(days=2), NOW) == 1

    def test_multiplier_is_monotonic(self):
        for section in Section:
            previous = 0
            for days in range(0, 200, 5):
                current = get_decay_multiplier(section, days_ago(days), NOW)
                assert current >= previous
                previous = current

    def test_cutoff_is_exclusive(self):
        assert not should_stop_revalidation(Section.DNS, days_ago(180), NOW)
        assert should_stop_revalidation(Section.DNS, days_ago(180.01), NOW)
        assert not should_stop_revalidation(Section.SEO, days_ago(90), NOW)
        assert should_stop_revalidation(Section.SEO, days_ago(91), NOW)

    def test_no_cutoff_without_history(self):
        assert not should_stop_revalidation(Section.DNS, None, NOW)
        assert not should_stop_revalidation(Section.DNS, NOW + timedelta(days=500), NOW)

    def test_apply_decay(self):
        assert apply_decay(100, 3) == 300
        assert apply_decay(-1, 3) == -1
        assert apply_decay(100, 0) == 100
        assert apply_decay(100, float("nan")) == 100


# =============================================================================
# Scheduler Tests
# =============================================================================

class TestScheduleRevalidation:

    def test_dns_after_five_days_is_tripled(self, scheduler, queue):
        assert scheduler.schedule_revalidation("Example.COM ", Section.DNS, NOW_MS + HOUR_MS, days_ago(5))

        task = queue.get_task("example.com:dns")
        assert task.payload["domain"] == "example.com"
        assert task.payload["section"] == "dns"
        assert task.payload["due_at"] == pytest.approx(NOW_MS + 3 * HOUR_MS)
        assert task.not_before == NOW + timedelta(hours=3)

    def test_registration_after_75_days(self, scheduler, queue):
        assert scheduler.schedule_revalidation("example.com", Section.REGISTRATION, NOW_MS + DAY_MS, days_ago(75))
        task = queue.get_task("example.com:registration")
        assert task.payload["due_at"] == pytest.approx(NOW_MS + 50 * DAY_MS)

    def test_beyond_cutoff_is_not_scheduled(self, scheduler, queue):
        assert not scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS, days_ago(200))
        assert len(queue) == 0

    def test_exactly_at_cutoff_still_schedules(self, scheduler, queue):
        assert scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS, days_ago(180))
        assert queue.get_task("example.com:dns").payload["due_at"] == pytest.approx(NOW_MS + 30 * HOUR_MS)

    def test_unknown_access_uses_base_due(self, scheduler, queue):
        assert scheduler.schedule_revalidation("example.com", Section.HEADERS, NOW_MS + 6 * HOUR_MS)
        assert queue.get_task("example.com:headers").payload["due_at"] == NOW_MS + 6 * HOUR_MS

    def test_future_access_is_fresh(self, scheduler, queue):
        future = NOW + timedelta(days=400)
        assert scheduler.schedule_revalidation("example.com", Section.SEO, NOW_MS + DAY_MS, future)
        assert queue.get_task("example.com:seo").payload["due_at"] == NOW_MS + DAY_MS

    def test_past_due_is_clamped_to_now(self, scheduler, queue):
        assert scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS - DAY_MS, days_ago(30))
        assert queue.get_task("example.com:dns").payload["due_at"] == NOW_MS

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), -1, "soon", None, True])
    def test_invalid_due_is_rejected(self, scheduler, queue, bad):
        assert not scheduler.schedule_revalidation("example.com", Section.DNS, bad)
        assert len(queue) == 0

    def test_empty_domain_is_rejected(self, scheduler, queue):
        assert not scheduler.schedule_revalidation("   ", Section.DNS, NOW_MS)
        assert len(queue) == 0

    def test_section_by_value(self, scheduler, queue):
        assert scheduler.schedule_revalidation("example.com", "certificates", NOW_MS + HOUR_MS)
        assert queue.get_status("example.com:certificates") == TaskStatus.PENDING
        assert not scheduler.schedule_revalidation("example.com", "whois", NOW_MS + HOUR_MS)

    def test_resubmission_overwrites(self, scheduler, queue):
        scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS)
        scheduler.schedule_revalidation("EXAMPLE.com", Section.DNS, NOW_MS + 2 * HOUR_MS)

        assert len(queue) == 1
        assert queue.get_task("example.com:dns").payload["due_at"] == NOW_MS + 2 * HOUR_MS
        assert queue.get_stats()["overwrites"] == 1

    def test_sections_are_independent(self, scheduler, queue):
        scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS)
        scheduler.schedule_revalidation("example.com", Section.HEADERS, NOW_MS + HOUR_MS)
        assert len(queue) == 2

    def test_queue_error_returns_false(self):
        queue = RecordingQueue(error=TaskQueueError("database is locked"))
        scheduler = RevalidationScheduler(queue, clock_ms=lambda: NOW_MS)
        assert scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS) is False

    def test_declined_submission_returns_false(self):
        queue = RecordingQueue(accept=False)
        scheduler = RevalidationScheduler(queue, clock_ms=lambda: NOW_MS)
        assert scheduler.schedule_revalidation("example.com", Section.DNS, NOW_MS + HOUR_MS) is False
        assert len(queue.submitted) == 1

    def test_batch(self, scheduler, queue):
        results = scheduler.schedule_revalidation_batch(
            "example.com",
            {Section.DNS: NOW_MS + HOUR_MS, "seo": NOW_MS + DAY_MS, "bogus": NOW_MS},
            days_ago(100),
        )
        # slow sections stop after 90 days
        assert results == {Section.DNS: True, Section.SEO: False}
        assert len(queue) == 1

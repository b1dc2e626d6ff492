"""
End-to-end tests for the revalidation worker: queue -> gate -> refresher.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from domainlens.db import init_db, make_engine, make_session_factory
from domainlens.dedup.gate import DeduplicationGate
from domainlens.dedup.store import InMemoryStore
from domainlens.errors import StoreUnavailableError, TaskQueueError
from domainlens.freshness import FetchResult, RevalidationWorker, Section, run_id, run_status_lookup
from domainlens.tasks import InMemoryTaskQueue, SqlTaskQueue, TaskStatus

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
KEY = "example.com:dns"


# =============================================================================
# Test Fixtures
# =============================================================================

class DownStore:
    """Store whose every call fails."""

    def _fail(self, *args, **kwargs):
        raise StoreUnavailableError("connection refused")

    get = set_if_absent = get_and_delete = set = compare_and_set = compare_and_delete = _fail


class Refresher:
    """Refresh callable recording the domains it was asked for."""

    def __init__(self, result=None, error=None):
        self.domains = []
        self.result = result if result is not None else FetchResult.ok({"records": []})
        self.error = error

    def __call__(self, domain):
        self.domains.append(domain)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def queue():
    return InMemoryTaskQueue()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def gate(store, queue):
    return DeduplicationGate(store, default_ttl=60, status_lookup=run_status_lookup(queue), sleep=lambda _: None)


@pytest.fixture
def refresher():
    return Refresher()


@pytest.fixture
def worker(queue, gate, refresher):
    return RevalidationWorker(queue, gate, {Section.DNS: refresher}, clock=lambda: NOW)


def submit(queue, key=KEY, section="dns", minutes_ago=1):
    domain = key.split(":")[0]
    queue.submit(key, {"domain": domain, "section": section}, NOW - timedelta(minutes=minutes_ago))


# =============================================================================
# Run Outcomes
# =============================================================================

class TestRunOnce:

    def test_due_task_is_refreshed_and_completed(self, worker, queue, refresher):
        submit(queue)

        outcomes = worker.run_once()

        assert outcomes == {"claimed": 1, "completed": 1}
        assert refresher.domains == ["example.com"]
        assert queue.get_status(KEY) == TaskStatus.COMPLETED

    def test_future_task_is_left_alone(self, worker, queue, refresher):
        queue.submit(KEY, {"domain": "example.com", "section": "dns"}, NOW + timedelta(hours=1))

        assert worker.run_once() == {"claimed": 0}
        assert refresher.domains == []
        assert queue.get_status(KEY) == TaskStatus.PENDING

    def test_lock_released_after_run(self, worker, queue, store):
        submit(queue)
        worker.run_once()
        assert len(store) == 0

    def test_failed_fetch_marks_failed(self, queue, gate):
        worker = RevalidationWorker(queue, gate, {Section.DNS: Refresher(FetchResult.fail("nxdomain"))})
        submit(queue)

        assert worker.run_once(NOW) == {"claimed": 1, "failed": 1}
        task = queue.get_task(KEY)
        assert task.status == TaskStatus.FAILED
        assert task.last_error == "nxdomain"

    def test_raising_refresher_marks_failed(self, queue, gate, store):
        worker = RevalidationWorker(queue, gate, {Section.DNS: Refresher(error=RuntimeError("resolver down"))})
        submit(queue)

        worker.run_once(NOW)

        task = queue.get_task(KEY)
        assert task.status == TaskStatus.FAILED
        assert task.last_error == "refresh_exception: resolver down"
        assert len(store) == 0

    def test_missing_refresher_marks_failed(self, worker, queue):
        submit(queue, key="example.com:certificates", section="certificates")

        worker.run_once()

        task = queue.get_task("example.com:certificates")
        assert task.status == TaskStatus.FAILED
        assert task.last_error == "no_refresher: certificates"

    def test_unknown_section_marks_failed(self, worker, queue):
        submit(queue, key="example.com:whois", section="whois")

        worker.run_once()

        assert queue.get_task("example.com:whois").last_error == "unknown_section: 'whois'"

    def test_registered_refresher_is_used(self, worker, queue):
        certs = Refresher()
        worker.register(Section.CERTIFICATES, certs)
        submit(queue, key="example.com:certificates", section="certificates")

        worker.run_once()

        assert certs.domains == ["example.com"]
        assert queue.get_status("example.com:certificates") == TaskStatus.COMPLETED

    def test_batch_size_limits_claims(self, queue, gate, refresher):
        worker = RevalidationWorker(queue, gate, {Section.DNS: refresher}, batch_size=2)
        for i in range(3):
            submit(queue, key=f"{i}.com:dns", minutes_ago=i + 1)

        assert worker.run_once(NOW)["claimed"] == 2
        assert refresher.domains == ["2.com", "1.com"]
        assert worker.run_once(NOW)["claimed"] == 1

    def test_claim_error_is_reported_not_raised(self, gate):
        queue = MagicMock()
        queue.claim_due.side_effect = TaskQueueError("database is locked")
        worker = RevalidationWorker(queue, gate)

        assert worker.run_once(NOW) == {"claimed": 0}

    def test_outcome_write_error_is_not_raised(self, queue, gate, refresher):
        submit(queue)
        claimed = queue.claim_due(NOW)
        broken = MagicMock()
        broken.mark_completed.side_effect = TaskQueueError("database is locked")
        worker = RevalidationWorker(broken, gate, {Section.DNS: refresher})

        assert worker.execute(claimed[0]) == "completed"


# =============================================================================
# Deduplication
# =============================================================================

class TestRunStatusLookup:

    def test_current_claim_is_running(self, queue):
        submit(queue)
        task = queue.claim_due(NOW)[0]
        assert run_status_lookup(queue)(run_id(task)) == TaskStatus.RUNNING

    def test_earlier_claim_is_unknown(self, queue):
        submit(queue)
        queue.claim_due(NOW)
        submit(queue)
        queue.claim_due(NOW)
        assert queue.get_task(KEY).attempts == 2
        assert run_status_lookup(queue)(f"{KEY}#1") is None

    def test_finished_claim_reports_outcome(self, queue):
        submit(queue)
        task = queue.claim_due(NOW)[0]
        queue.mark_failed(KEY, "servfail")
        assert run_status_lookup(queue)(run_id(task)) == TaskStatus.FAILED

    @pytest.mark.parametrize("task_id", ["missing.com:dns#1", KEY, "task-1"])
    def test_foreign_ids_are_unknown(self, queue, task_id):
        submit(queue)
        queue.claim_due(NOW)
        assert run_status_lookup(queue)(task_id) is None


class TestWorkerDeduplication:

    def test_attaches_to_claim_in_progress(self, queue, gate, store):
        """The same claim executed twice is refreshed once."""
        other = RevalidationWorker(queue, gate, {Section.DNS: Refresher()})
        nested = []

        def refresh_and_reexecute(domain):
            nested.append(other.execute(queue.get_task(KEY)))
            return FetchResult.ok({})

        worker = RevalidationWorker(queue, gate, {Section.DNS: refresh_and_reexecute}, clock=lambda: NOW)
        submit(queue)

        assert worker.run_once() == {"claimed": 1, "completed": 1}
        assert nested == ["attached"]
        assert gate.get_stats()["attached"] == 1
        assert queue.get_status(KEY) == TaskStatus.COMPLETED
        assert len(store) == 0

    def test_lock_of_crashed_claim_is_cleared(self, worker, queue, gate, store, refresher):
        submit(queue)
        crashed = queue.claim_due(NOW)[0]
        # The crashed run never released its lock
        store.set(f"dedup:{KEY}", run_id(crashed), 60)
        submit(queue)

        assert worker.run_once() == {"claimed": 1, "completed": 1}
        assert refresher.domains == ["example.com"]
        assert gate.get_stats()["stale_cleared"] == 1
        assert len(store) == 0

    def test_resubmitted_task_runs_again(self, queue, gate, store):
        other_refresher = Refresher()
        other = RevalidationWorker(queue, gate, {Section.DNS: other_refresher}, clock=lambda: NOW)
        nested = {}

        def refresh_and_resubmit(domain):
            submit(queue)
            nested.update(other.run_once())
            return FetchResult.ok({})

        worker = RevalidationWorker(queue, gate, {Section.DNS: refresh_and_resubmit}, clock=lambda: NOW)
        submit(queue)

        assert worker.run_once() == {"claimed": 1, "completed": 1}
        assert nested == {"claimed": 1, "completed": 1}
        assert other_refresher.domains == ["example.com"]
        assert queue.get_task(KEY).attempts == 2
        assert len(store) == 0

    def test_gate_timeout_marks_failed(self, queue, store, refresher):
        ticks = [0.0]

        def advance(seconds):
            ticks[0] += seconds

        gate = DeduplicationGate(
            store,
            poll_interval=0.5,
            poll_timeout=2.0,
            status_lookup=run_status_lookup(queue),
            sleep=advance,
            clock=lambda: ticks[0],
        )
        store.set(f"dedup:{KEY}", "__pending__:elsewhere", 60)
        worker = RevalidationWorker(queue, gate, {Section.DNS: refresher})
        submit(queue)

        assert worker.run_once(NOW) == {"claimed": 1, "failed": 1}
        assert refresher.domains == []
        assert queue.get_task(KEY).last_error == "dedup_timeout"

    def test_store_down_fails_closed(self, queue, refresher):
        gate = DeduplicationGate(DownStore(), fail_closed=True)
        worker = RevalidationWorker(queue, gate, {Section.DNS: refresher})
        submit(queue)

        assert worker.run_once(NOW) == {"claimed": 1, "failed": 1}
        assert refresher.domains == []
        assert queue.get_task(KEY).last_error.startswith("dedup_unavailable")

    def test_store_down_fails_open(self, queue, refresher):
        gate = DeduplicationGate(DownStore(), fail_closed=False)
        worker = RevalidationWorker(queue, gate, {Section.DNS: refresher})
        submit(queue)

        assert worker.run_once(NOW) == {"claimed": 1, "completed": 1}
        assert refresher.domains == ["example.com"]
        assert gate.get_stats()["fail_open"] == 1

    def test_release_error_does_not_fail_task(self, queue, refresher):
        store = MagicMock()
        store.set_if_absent.return_value = True
        store.compare_and_set.return_value = True
        store.compare_and_delete.side_effect = StoreUnavailableError("connection reset")
        worker = RevalidationWorker(queue, DeduplicationGate(store), {Section.DNS: refresher})
        submit(queue)

        assert worker.run_once(NOW) == {"claimed": 1, "completed": 1}
        assert queue.get_status(KEY) == TaskStatus.COMPLETED


# =============================================================================
# SQL Queue
# =============================================================================

class TestWorkerWithSqlQueue:

    @pytest.fixture
    def sql_queue(self, tmp_path):
        engine = make_engine(f"sqlite:///{tmp_path / 'tasks.db'}")
        init_db(engine)
        yield SqlTaskQueue(make_session_factory(engine))
        engine.dispose()

    def test_run_against_sql_queue(self, sql_queue, store, refresher):
        gate = DeduplicationGate(store, status_lookup=run_status_lookup(sql_queue))
        worker = RevalidationWorker(sql_queue, gate, {Section.DNS: refresher})
        submit(sql_queue)
        submit(sql_queue, key="example.org:dns")

        assert worker.run_once(NOW) == {"claimed": 2, "completed": 2}
        assert sorted(refresher.domains) == ["example.com", "example.org"]
        assert sql_queue.get_status(KEY) == TaskStatus.COMPLETED
        assert worker.run_once(NOW) == {"claimed": 0}

    def test_sql_failure_is_recorded(self, sql_queue, store):
        gate = DeduplicationGate(store, status_lookup=run_status_lookup(sql_queue))
        worker = RevalidationWorker(sql_queue, gate, {Section.DNS: Refresher(FetchResult.fail("servfail"))})
        submit(sql_queue)

        worker.run_once(NOW)

        task = sql_queue.get_task(KEY)
        assert task.status == TaskStatus.FAILED
        assert task.last_error == "servfail"
        assert task.attempts == 1


# =============================================================================
# Stats
# =============================================================================

class TestWorkerStats:

    def test_stats_accumulate(self, worker, queue):
        submit(queue)
        submit(queue, key="example.com:whois", section="whois")

        worker.run_once()
        stats = worker.get_stats()

        assert stats["claimed"] == 2
        assert stats["completed"] == 1
        assert stats["failed"] == 1
        assert stats["sections"] == ["dns"]
        assert stats["gate"]["started"] == 2

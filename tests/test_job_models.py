# ============================================================================
# JOB MODEL + SERVICE TESTS
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Tests - Job lifecycle, checkpoints, request validation
# PURPOSE: Verify models and the job/checkpoint services without the loop
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Model + Service Tests

Covers:
1. Job state machine (legal and illegal transitions)
2. Outcome recording and the progress invariant
3. Checkpoint add / remaining / restore
4. JobRequest normalization
5. RetryPolicy schedules
6. JobService validation, idempotency and startup recovery
7. CheckpointService, ExecutionSlot, ProgressPublisher

Run with:
    pytest tests/test_job_models.py -v
"""

import asyncio
import hashlib

import pytest
from pydantic import ValidationError

from core.config import OrchestratorDefaults
from core.contracts import ItemStatus, JobStatus, ProgressEvent
from core.errors import JobValidationError
from core.models import (
    ItemOutcome,
    Job,
    JobCheckpoint,
    JobRequest,
    Period,
    RetryPolicy,
)
from orchestrator.progress import ProgressPublisher
from orchestrator.slot import ExecutionSlot
from repositories import CheckpointRepository, JobRepository, MemoryStore
from services import CheckpointService, JobService


Q2 = Period(year=2025, quarter=2)


# ============================================================================
# FIXTURES
# ============================================================================

def _make_job(items=("AAPL", "MSFT", "GOOGL"), **kwargs):
    return Job(job_id="job-1", items=list(items), **kwargs)


def _success(item, period=Q2):
    return ItemOutcome(item=item, status=ItemStatus.SUCCESS, period=period, attempts=1)


def _skipped(item, period=Q2):
    return ItemOutcome(item=item, status=ItemStatus.SKIPPED, period=period)


def _failed(item):
    return ItemOutcome(item=item, status=ItemStatus.FAILED, error="not found")


def _job_service(**settings):
    return JobService(JobRepository(MemoryStore()), OrchestratorDefaults(**settings))


# ============================================================================
# STATE MACHINE
# ============================================================================

class TestJobStateMachine:

    def test_new_job_is_pending_with_total(self):
        job = _make_job()
        assert job.status == JobStatus.PENDING
        assert job.progress.total == 3
        assert job.pending_items() == ["AAPL", "MSFT", "GOOGL"]

    def test_run_pause_resume_complete(self):
        job = _make_job(items=["AAPL"])
        job.mark_running()
        started = job.started_at
        job.mark_paused()
        job.mark_running()
        assert job.started_at == started

        job.record_outcome(_success("AAPL"))
        job.mark_completed()
        assert job.status == JobStatus.COMPLETED
        assert job.is_terminal
        assert job.duration_seconds is not None

    def test_cannot_complete_with_pending_items(self):
        job = _make_job()
        job.mark_running()
        with pytest.raises(ValueError):
            job.mark_completed()

    @pytest.mark.parametrize("terminal", ["mark_completed", "mark_cancelled"])
    def test_terminal_states_are_final(self, terminal):
        job = _make_job(items=[])
        job.mark_running()
        getattr(job, terminal)()
        for action in (job.mark_running, job.mark_paused, job.reset_to_pending):
            with pytest.raises(ValueError):
                action()

    def test_pause_only_from_running(self):
        job = _make_job()
        with pytest.raises(ValueError):
            job.mark_paused()

    def test_failed_keeps_error_message(self):
        job = _make_job()
        job.mark_running()
        job.mark_failed("Checkpoint write failed: disk full")
        assert job.status == JobStatus.FAILED
        assert job.error_message.startswith("Checkpoint write failed")

    def test_reset_to_pending_clears_current_item(self):
        job = _make_job()
        job.mark_running()
        job.progress.currently_processing_item = "MSFT"
        job.reset_to_pending()
        assert job.status == JobStatus.PENDING
        assert job.progress.currently_processing_item is None

    def test_round_trips_through_json(self):
        job = _make_job(periods=[Q2])
        job.mark_running()
        job.record_outcome(_success("AAPL"))
        restored = Job.model_validate(job.model_dump(mode="json"))
        assert restored.status == JobStatus.RUNNING
        assert restored.periods == [Q2]
        assert restored.outcome_for("AAPL").period == Q2


# ============================================================================
# OUTCOMES & PROGRESS
# ============================================================================

class TestOutcomes:

    def test_each_item_in_exactly_one_bucket(self):
        job = _make_job()
        job.record_outcomes([_success("AAPL"), _failed("MSFT"), _skipped("GOOGL")])

        progress = job.progress
        assert progress.processed == ["AAPL"]
        assert progress.failed == ["MSFT"]
        assert progress.skipped == ["GOOGL"]
        assert progress.current == 2
        assert progress.settled == 3
        assert progress.percent == 100.0
        assert job.pending_items() == []

    def test_re_recording_moves_item(self):
        job = _make_job()
        job.record_outcome(_failed("MSFT"))
        job.record_outcome(_success("MSFT"))

        assert job.progress.failed == []
        assert job.progress.processed == ["MSFT"]
        assert job.progress.current == 1
        assert len(job.results) == 1

    def test_percent_of_empty_job(self):
        assert _make_job(items=[]).progress.percent == 100.0

    def test_restore_rebuilds_from_done_items_only(self):
        job = _make_job()
        job.record_outcomes([_success("AAPL"), _failed("MSFT")])

        job.restore({"AAPL": _success("AAPL"), "GOOGL": _skipped("GOOGL")})

        assert job.progress.processed == ["AAPL"]
        assert job.progress.skipped == ["GOOGL"]
        assert job.progress.failed == []
        assert job.pending_items() == ["MSFT"]
        assert job.progress.total == 3

    def test_snapshot_is_a_copy(self):
        job = _make_job()
        job.record_outcome(_success("AAPL"))
        snap = job.snapshot(ProgressEvent.BATCH_COMPLETED)
        job.record_outcome(_success("MSFT"))

        assert snap.processed == ["AAPL"]
        assert snap.current == 1
        assert snap.event == ProgressEvent.BATCH_COMPLETED


# ============================================================================
# CHECKPOINT
# ============================================================================

class TestCheckpoint:

    def test_only_done_outcomes_recorded(self):
        checkpoint = JobCheckpoint(job_id="job-1")
        added = checkpoint.add_many([_success("AAPL"), _failed("MSFT"), _skipped("GOOGL")])

        assert added == 2
        assert checkpoint.done_items == ["AAPL", "GOOGL"]
        assert checkpoint.is_done("AAPL")
        assert not checkpoint.is_done("MSFT")

    def test_remaining_preserves_order(self):
        checkpoint = JobCheckpoint(job_id="job-1")
        checkpoint.add(_success("MSFT"))
        assert checkpoint.remaining(["AAPL", "MSFT", "GOOGL"]) == ["AAPL", "GOOGL"]

    def test_adding_twice_keeps_one_entry(self):
        checkpoint = JobCheckpoint(job_id="job-1")
        checkpoint.add(_success("AAPL"))
        checkpoint.add(_skipped("AAPL"))
        assert checkpoint.done_items == ["AAPL"]
        assert checkpoint.results["AAPL"].status == ItemStatus.SKIPPED

    def test_service_round_trip(self):
        service = CheckpointService(CheckpointRepository(MemoryStore()))

        async def run_test():
            empty = await service.load("job-1")
            await service.record_batch("job-1", [_success("AAPL"), _failed("MSFT")])
            await service.record_done("job-1", "GOOGL", _skipped("IGNORED"))
            done = await service.done_outcomes("job-1")
            cleared = await service.clear("job-1")
            after = await service.load("job-1")
            return empty, done, cleared, after

        empty, done, cleared, after = asyncio.run(run_test())

        assert empty.is_empty
        assert sorted(done) == ["AAPL", "GOOGL"]
        assert done["GOOGL"].item == "GOOGL"
        assert cleared is True
        assert after.is_empty


# ============================================================================
# REQUEST & RETRY
# ============================================================================

class TestJobRequest:

    def test_items_normalized_and_deduplicated(self):
        request = JobRequest(items=[" aapl", "MSFT", "AAPL", "", "THISISTOOLONG", "brk.b"])
        assert request.items == ["AAPL", "MSFT", "BRK.B"]

    def test_single_string_item(self):
        assert JobRequest(items="nvda").items == ["NVDA"]

    def test_periods_parsed_sorted_and_deduplicated(self):
        request = JobRequest(items=["A"], periods=["2024-Q4", "2025-Q2", "2024-Q4"])
        assert request.periods == [Q2, Period(year=2024, quarter=4)]

    def test_invalid_period_rejected(self):
        with pytest.raises(ValidationError):
            JobRequest(items=["A"], periods=["2025-Q7"])

    def test_negative_horizon_rejected(self):
        with pytest.raises(ValidationError):
            JobRequest(items=["A"], horizon=-1)


class TestRetryPolicy:

    def test_exponential_schedule_is_capped(self):
        policy = RetryPolicy(max_attempts=6, initial_delay_seconds=1.0, max_delay_seconds=10.0)
        assert policy.delays() == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_linear_and_fixed(self):
        assert RetryPolicy(max_attempts=4, backoff="linear").delays() == [1.0, 2.0, 3.0]
        assert RetryPolicy(max_attempts=3, backoff="fixed", initial_delay_seconds=2.5).delays() == [2.5, 2.5]

    def test_single_attempt_has_no_delays(self):
        assert RetryPolicy(max_attempts=1).delays() == []

    def test_retry_after_wins_when_longer(self):
        policy = RetryPolicy(initial_delay_seconds=1.0, max_delay_seconds=60.0)
        assert policy.wait_for_rate_limit(1, 12.0) == 12.0
        assert policy.wait_for_rate_limit(3, 2.0) == 4.0
        assert policy.wait_for_rate_limit(1, 600.0) == 60.0
        assert policy.wait_for_rate_limit(2, None) == 2.0

    def test_unknown_backoff_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicy(backoff="random")


# ============================================================================
# JOB SERVICE
# ============================================================================

class TestJobService:

    def test_create_job_uses_default_horizon(self):
        service = _job_service(horizon=8)
        job = asyncio.run(service.create_job(JobRequest(items=["aapl"])))

        assert job.status == JobStatus.PENDING
        assert job.items == ["AAPL"]
        assert job.horizon == 8
        assert len(job.job_id) == 32

    def test_request_horizon_overrides_default(self):
        service = _job_service(horizon=8)
        job = asyncio.run(service.create_job(JobRequest(items=["A"], horizon=2)))
        assert job.horizon == 2

    def test_idempotency_key_returns_existing_job(self):
        service = _job_service()

        async def run_test():
            first = await service.create_job(JobRequest(items=["A"]), idempotency_key="k1")
            second = await service.create_job(JobRequest(items=["B"]), idempotency_key="k1")
            return first, second

        first, second = asyncio.run(run_test())

        assert first.job_id == second.job_id
        assert first.job_id == hashlib.sha256(b"k1").hexdigest()[:32]
        assert second.items == ["A"]

    def test_random_ids_without_key(self):
        service = _job_service()

        async def run_test():
            a = await service.create_job(JobRequest(items=["A"]))
            b = await service.create_job(JobRequest(items=["A"]))
            return a, b

        a, b = asyncio.run(run_test())
        assert a.job_id != b.job_id

    @pytest.mark.parametrize("request_kwargs,settings", [
        ({"items": []}, {}),
        ({"items": ["", "   "]}, {}),
        ({"items": ["A", "B", "C"]}, {"max_items_per_job": 2}),
        ({"items": ["A", "B"], "horizon": 6}, {"max_total_tasks": 10}),
        ({"items": ["A", "B", "C"], "periods": ["2025-Q1", "2024-Q4"]}, {"max_total_tasks": 5}),
    ])
    def test_validation(self, request_kwargs, settings):
        service = _job_service(**settings)
        with pytest.raises(JobValidationError):
            asyncio.run(service.create_job(JobRequest(**request_kwargs)))

    def test_recover_on_startup(self):
        service = _job_service()

        async def run_test():
            running = await service.create_job(JobRequest(items=["A"]))
            running.mark_running()
            await service.save(running)

            done = await service.create_job(JobRequest(items=["B"]))
            done.mark_running()
            done.record_outcome(_success("B"))
            done.mark_completed()
            await service.save(done)

            pending = await service.create_job(JobRequest(items=["C"]))
            return running, pending, await service.recover_on_startup()

        running, pending, recovered = asyncio.run(run_test())

        assert [j.job_id for j in recovered] == [running.job_id, pending.job_id]
        assert all(j.status == JobStatus.PENDING for j in recovered)

    def test_get_progress(self):
        service = _job_service()

        async def run_test():
            job = await service.create_job(JobRequest(items=["A", "B"]))
            return await service.get_progress(job.job_id), await service.get_progress("missing")

        snapshot, missing = asyncio.run(run_test())
        assert snapshot.total == 2
        assert snapshot.status == JobStatus.PENDING
        assert missing is None


# ============================================================================
# SLOT & PUBLISHER
# ============================================================================

class TestExecutionSlot:

    def test_single_holder(self):
        slot = ExecutionSlot()
        assert slot.try_acquire("a")
        assert not slot.try_acquire("b")
        assert slot.try_acquire("a")
        assert slot.holder == "a"

    def test_only_holder_releases(self):
        slot = ExecutionSlot()
        slot.try_acquire("a")
        assert not slot.release("b")
        assert slot.holder == "a"
        assert slot.release("a")
        assert slot.is_free


class TestProgressPublisher:

    def test_sync_and_async_subscribers(self):
        publisher = ProgressPublisher()
        seen = []

        async def async_subscriber(snapshot):
            seen.append(("async", snapshot.job_id))

        publisher.subscribe(lambda s: seen.append(("sync", s.job_id)))
        publisher.subscribe(async_subscriber)

        asyncio.run(publisher.publish(_make_job().snapshot()))

        assert seen == [("sync", "job-1"), ("async", "job-1")]
        assert publisher.published_count == 1

    def test_failing_subscriber_is_contained(self):
        publisher = ProgressPublisher()
        seen = []

        def broken(snapshot):
            raise RuntimeError("subscriber bug")

        publisher.subscribe(broken)
        publisher.subscribe(seen.append)

        asyncio.run(publisher.publish(_make_job().snapshot()))

        assert len(seen) == 1

    def test_unsubscribe_is_idempotent(self):
        publisher = ProgressPublisher()
        unsubscribe = publisher.subscribe(lambda s: None)
        assert publisher.subscriber_count == 1
        unsubscribe()
        unsubscribe()
        assert publisher.subscriber_count == 0

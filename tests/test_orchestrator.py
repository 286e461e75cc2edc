# ============================================================================
# ORCHESTRATOR TESTS
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Tests - Scheduling, control and resumability
# PURPOSE: Drive the orchestration loop end to end with an in-memory provider
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Tests

Uses MemoryStore-backed repositories (or JsonSnapshotStore under tmp_path
for restart tests) and an instrumented provider stub. The inter-batch
sleep is recorded, never actually waited on.

Covers:
1. Two-item candidate scenario (NotFound then success, first-hit success)
2. Concurrency bound: in-flight fetches never exceed worker_count
3. Batch boundaries: progress invariant, inter-batch delay, event order
4. Item failures and unexpected item errors never fail the job
5. Checkpoint write failure fails only the current job
6. Resumability across a restart, startup recovery
7. pause / resume / cancel legality and queue order

Run with:
    pytest tests/test_orchestrator.py -v
"""

import asyncio
from datetime import datetime

import pytest

from core.config import OrchestratorDefaults
from core.contracts import ItemStatus, JobStatus, ProgressEvent
from core.errors import StoreError
from core.models import Artifact, JobRequest, Period, RetryPolicy
from orchestrator import ItemWorker, Orchestrator
from repositories import CheckpointRepository, JobRepository
from repositories.kv_store import JsonSnapshotStore, MemoryStore
from services import ArtifactCache, CheckpointService, JobService


NOW = datetime(2025, 8, 15)
P1 = Period(year=2025, quarter=2)
P2 = Period(year=2025, quarter=1)


# ============================================================================
# FIXTURES
# ============================================================================

class FakeProvider:
    """
    Provider stub that counts concurrent fetches.

    found maps item -> set of period keys that have data. Items not listed
    have data for every period. errors maps item -> exception to raise.
    """

    def __init__(self, found=None, errors=None):
        self.found = found or {}
        self.errors = errors or {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, item, period):
        self.calls.append((item, period.key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            if item in self.errors:
                raise self.errors[item]
            if item in self.found and period.key not in self.found[item]:
                return None
            return Artifact(item=item, period=period, payload=f"{item} {period.key}")
        finally:
            self.in_flight -= 1

    def items_called(self):
        return {item for item, _ in self.calls}


class FlakyStore(MemoryStore):
    """MemoryStore whose first `failures` snapshots raise StoreError."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    def snapshot(self):
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("disk full")
        super().snapshot()


class CountingStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.snapshots = 0

    def snapshot(self):
        self.snapshots += 1
        super().snapshot()


class Harness:
    """Orchestrator wired to in-memory stores, with recorded events and sleeps."""

    def __init__(
        self,
        provider,
        batch_size=2,
        worker_count=2,
        delay=10.0,
        job_store=None,
        checkpoint_store=None,
        cache_store=None,
        snapshot_every_batches=5,
    ):
        self.provider = provider
        self.batch_sleeps = []
        self.events = []

        self.settings = OrchestratorDefaults(
            batch_size=batch_size,
            worker_count=worker_count,
            batch_delay_seconds=delay,
            horizon=2,
            snapshot_every_batches=snapshot_every_batches,
        )
        self.job_repo = JobRepository(job_store if job_store is not None else MemoryStore())
        self.checkpoint_repo = CheckpointRepository(checkpoint_store if checkpoint_store is not None else MemoryStore())
        self.cache = ArtifactCache(cache_store if cache_store is not None else MemoryStore())
        self.job_service = JobService(self.job_repo, self.settings)
        self.checkpoint_service = CheckpointService(self.checkpoint_repo)
        self.worker = ItemWorker(provider, self.cache, RetryPolicy(max_attempts=1))
        self.orchestrator = Orchestrator(
            self.job_service,
            self.checkpoint_service,
            self.worker,
            cache=self.cache,
            settings=self.settings,
            sleep=self._batch_sleep,
            now=lambda: NOW,
        )
        self.orchestrator.publisher.subscribe(self.events.append)

    async def _batch_sleep(self, seconds):
        self.batch_sleeps.append(seconds)
        await asyncio.sleep(0)

    async def run_to_end(self, items, **request_kwargs):
        await self.orchestrator.start()
        job = await self.orchestrator.submit(JobRequest(items=items, **request_kwargs))
        await self.orchestrator.drain()
        return await self.job_service.get_job(job.job_id)

    def event_names(self, job_id=None):
        return [
            e.event for e in self.events
            if job_id is None or e.job_id == job_id
        ]


def _items(n):
    return [f"T{i:02d}" for i in range(n)]


# ============================================================================
# CANDIDATE SCENARIO
# ============================================================================

class TestCandidateScenario:

    def test_not_found_then_success_and_first_hit(self):
        provider = FakeProvider(found={"A": {P2.key}, "B": {P1.key}})
        harness = Harness(provider)

        job = asyncio.run(harness.run_to_end(["A", "B"], horizon=2))

        assert job.status == JobStatus.COMPLETED
        assert sorted(job.progress.processed) == ["A", "B"]
        assert job.progress.failed == []
        assert job.progress.skipped == []
        assert job.outcome_for("A").period == P2
        assert job.outcome_for("B").period == P1
        assert ("B", P2.key) not in provider.calls
        assert sorted(provider.calls) == [("A", P2.key), ("A", P1.key), ("B", P1.key)]

    def test_explicit_periods_bypass_resolver(self):
        provider = FakeProvider(found={"A": {"2023-Q4"}})
        harness = Harness(provider)

        job = asyncio.run(harness.run_to_end(["A"], periods=["2023-Q4", "2024-Q1"]))

        assert job.outcome_for("A").period == Period(year=2023, quarter=4)
        assert provider.calls == [("A", "2024-Q1"), ("A", "2023-Q4")]

    def test_cached_items_skipped_with_zero_calls(self):
        provider = FakeProvider()
        harness = Harness(provider)
        for item in ("A", "B"):
            harness.cache.set(Artifact(item=item, period=P1, payload="cached"))

        job = asyncio.run(harness.run_to_end(["A", "B"]))

        assert job.status == JobStatus.COMPLETED
        assert sorted(job.progress.skipped) == ["A", "B"]
        assert job.progress.current == 0
        assert job.progress.percent == 100.0
        assert provider.calls == []

    def test_force_refresh_ignores_cache(self):
        provider = FakeProvider()
        harness = Harness(provider)
        harness.cache.set(Artifact(item="A", period=P1, payload="cached"))

        job = asyncio.run(harness.run_to_end(["A"], force_refresh=True))

        assert job.progress.processed == ["A"]
        assert provider.calls == [("A", P1.key)]
        assert harness.cache.get("A", P1).payload == f"A {P1.key}"


# ============================================================================
# BATCHING & CONCURRENCY
# ============================================================================

class TestBatching:

    @pytest.mark.parametrize("batch_size,worker_count", [(4, 2), (3, 1), (5, 5)])
    def test_in_flight_never_exceeds_worker_count(self, batch_size, worker_count):
        provider = FakeProvider()
        harness = Harness(provider, batch_size=batch_size, worker_count=worker_count)

        asyncio.run(harness.run_to_end(_items(10)))

        assert provider.max_in_flight <= worker_count
        assert provider.max_in_flight == worker_count

    def test_delay_only_between_batches(self):
        harness = Harness(FakeProvider(), batch_size=2, worker_count=2, delay=7.5)

        asyncio.run(harness.run_to_end(_items(5)))

        # 3 batches -> 2 gaps
        assert harness.batch_sleeps == [7.5, 7.5]

    def test_single_batch_never_sleeps(self):
        harness = Harness(FakeProvider(), batch_size=5, worker_count=2)
        asyncio.run(harness.run_to_end(_items(3)))
        assert harness.batch_sleeps == []

    def test_event_order(self):
        harness = Harness(FakeProvider(), batch_size=2)

        job = asyncio.run(harness.run_to_end(_items(5)))

        assert harness.event_names(job.job_id) == [
            ProgressEvent.JOB_STARTED,
            ProgressEvent.BATCH_COMPLETED,
            ProgressEvent.BATCH_COMPLETED,
            ProgressEvent.BATCH_COMPLETED,
            ProgressEvent.JOB_COMPLETED,
        ]

    def test_progress_invariant_at_every_snapshot(self):
        provider = FakeProvider(found={"T01": set(), "T04": set()})
        harness = Harness(provider, batch_size=2)

        asyncio.run(harness.run_to_end(_items(6)))

        currents = []
        for snap in harness.events:
            assert snap.current == len(snap.processed) + len(snap.failed)
            buckets = snap.processed + snap.failed + snap.skipped
            assert len(buckets) == len(set(buckets))
            assert snap.total == 6
            currents.append(snap.current)
        assert currents == sorted(currents)
        assert currents[-1] == 6

    def test_items_attempted_batch_by_batch_in_order(self):
        provider = FakeProvider()
        harness = Harness(provider, batch_size=2, worker_count=2)

        asyncio.run(harness.run_to_end(_items(6)))

        first_seen = []
        for item, _ in provider.calls:
            if item not in first_seen:
                first_seen.append(item)
        assert set(first_seen[:2]) == {"T00", "T01"}
        assert set(first_seen[2:4]) == {"T02", "T03"}
        assert set(first_seen[4:]) == {"T04", "T05"}

    def test_cache_snapshot_cadence(self):
        store = CountingStore()
        harness = Harness(
            FakeProvider(),
            batch_size=1,
            worker_count=1,
            cache_store=store,
            snapshot_every_batches=2,
        )

        asyncio.run(harness.run_to_end(_items(5)))

        # After batches 2 and 4, then once at job end
        assert store.snapshots == 3


# ============================================================================
# FAILURE HANDLING
# ============================================================================

class TestFailureHandling:

    def test_exhausted_item_does_not_fail_job(self):
        provider = FakeProvider(found={"C": set()})
        harness = Harness(provider)

        job = asyncio.run(harness.run_to_end(["A", "C"]))

        assert job.status == JobStatus.COMPLETED
        assert job.progress.failed == ["C"]
        assert job.outcome_for("C").error == "not found"
        assert job.progress.current == 2

    def test_unexpected_item_error_fails_only_that_item(self):
        provider = FakeProvider(errors={"B": RuntimeError("boom")})
        harness = Harness(provider)

        job = asyncio.run(harness.run_to_end(["A", "B"]))

        assert job.status == JobStatus.COMPLETED
        assert job.progress.processed == ["A"]
        outcome = job.outcome_for("B")
        assert outcome.status == ItemStatus.FAILED
        assert outcome.error == "RuntimeError: boom"

    def test_checkpoint_failure_fails_current_job_only(self):
        harness = Harness(FakeProvider(), checkpoint_store=FlakyStore(failures=1))

        async def run_test():
            await harness.orchestrator.start()
            first = await harness.orchestrator.submit(JobRequest(items=["A", "B"]))
            second = await harness.orchestrator.submit(JobRequest(items=["C"]))
            await harness.orchestrator.drain()
            return (
                await harness.job_service.get_job(first.job_id),
                await harness.job_service.get_job(second.job_id),
            )

        first, second = asyncio.run(run_test())

        assert first.status == JobStatus.FAILED
        assert "Checkpoint write failed" in first.error_message
        assert first.progress.current == 0
        assert harness.event_names(first.job_id)[-1] == ProgressEvent.JOB_FAILED
        assert second.status == JobStatus.COMPLETED
        assert harness.orchestrator.slot.is_free

    def test_job_store_failure_fails_job(self):
        # First save (job creation) succeeds, the RUNNING save fails
        store = FlakyStore(failures=0)
        harness = Harness(FakeProvider(), job_store=store)

        async def run_test():
            await harness.orchestrator.start()
            job = await harness.job_service.create_job(JobRequest(items=["A"]))
            store.failures = 1
            await harness.orchestrator.run_job(job.job_id)
            return await harness.job_service.get_job(job.job_id)

        job = asyncio.run(run_test())

        assert job.status == JobStatus.FAILED
        assert "Job store write failed" in job.error_message


# ============================================================================
# RESUMABILITY & RECOVERY
# ============================================================================

class TestResumability:

    def _file_harness(self, tmp_path, provider):
        return Harness(
            provider,
            batch_size=2,
            worker_count=2,
            job_store=JsonSnapshotStore(tmp_path / "jobs.json"),
            checkpoint_store=JsonSnapshotStore(tmp_path / "checkpoints.json"),
        )

    def test_restart_skips_checkpointed_items(self, tmp_path):
        items = ["AAA", "BBB", "CCC", "DDD", "EEE"]

        # First process: stop after the first batch
        first = self._file_harness(tmp_path, FakeProvider())
        stop_tasks = []

        def stop_after_first_batch(snapshot):
            if snapshot.event == ProgressEvent.BATCH_COMPLETED and not stop_tasks:
                stop_tasks.append(asyncio.create_task(first.orchestrator.stop()))

        first.orchestrator.publisher.subscribe(stop_after_first_batch)

        async def run_first():
            await first.orchestrator.start()
            job = await first.orchestrator.submit(JobRequest(items=items))
            await first.orchestrator.drain()
            await stop_tasks[0]
            return job.job_id

        job_id = asyncio.run(run_first())

        interrupted = asyncio.run(first.job_service.get_job(job_id))
        assert interrupted.status == JobStatus.PENDING
        assert interrupted.progress.current == 2

        # Second process: fresh stores over the same files
        provider = FakeProvider()
        second = self._file_harness(tmp_path, provider)

        async def run_second():
            await second.job_repo.load()
            await second.checkpoint_repo.load()
            recovered = await second.orchestrator.start()
            await second.orchestrator.drain()
            return recovered, await second.job_service.get_job(job_id)

        recovered, job = asyncio.run(run_second())

        assert [j.job_id for j in recovered] == [job_id]
        assert provider.items_called() == {"CCC", "DDD", "EEE"}
        assert job.status == JobStatus.COMPLETED
        assert job.progress.total == 5
        assert sorted(job.progress.processed) == items

    def test_startup_resets_running_and_paused_jobs(self):
        harness = Harness(FakeProvider())

        async def run_test():
            service = harness.job_service
            running = await service.create_job(JobRequest(items=["A"]))
            running.mark_running()
            await service.save(running)

            paused = await service.create_job(JobRequest(items=["B"]))
            paused.mark_running()
            paused.mark_paused()
            await service.save(paused)

            recovered = await harness.orchestrator.start()
            statuses = [j.status for j in recovered]
            await harness.orchestrator.drain()
            final = [await service.get_job(j.job_id) for j in (running, paused)]
            return statuses, final

        statuses, final = asyncio.run(run_test())

        assert statuses == [JobStatus.PENDING, JobStatus.PENDING]
        assert [j.status for j in final] == [JobStatus.COMPLETED, JobStatus.COMPLETED]

    def test_failed_items_are_not_checkpointed(self):
        harness = Harness(FakeProvider(found={"B": set()}))
        seen = []

        async def read_checkpoint(snapshot):
            if snapshot.event == ProgressEvent.BATCH_COMPLETED:
                seen.append(await harness.checkpoint_service.load(snapshot.job_id))

        harness.orchestrator.publisher.subscribe(read_checkpoint)

        async def run_test():
            job = await harness.job_service.create_job(JobRequest(items=["A", "B"]))
            await harness.orchestrator.run_job(job.job_id)
            return await harness.job_service.get_job(job.job_id)

        stored = asyncio.run(run_test())

        assert stored.progress.failed == ["B"]
        assert seen[0].done_items == ["A"]
        assert seen[0].remaining(stored.items) == ["B"]

    def test_checkpoint_cleared_when_job_finishes(self):
        harness = Harness(FakeProvider())

        async def run_test():
            done = await harness.run_to_end(["A", "B"])
            queued = await harness.job_service.create_job(JobRequest(items=["C"]))
            await harness.checkpoint_service.record_batch(queued.job_id, [])
            await harness.orchestrator.cancel(queued.job_id)
            return done, queued, list(harness.checkpoint_repo.store.keys())

        done, queued, remaining = asyncio.run(run_test())

        assert done.status == JobStatus.COMPLETED
        assert done.job_id not in remaining
        assert queued.job_id not in remaining


# ============================================================================
# CONTROL SURFACE
# ============================================================================

class TestControl:

    def test_pause_then_resume(self):
        provider = FakeProvider()
        harness = Harness(provider, batch_size=2)
        paused = []

        async def pause_after_first_batch(snapshot):
            if snapshot.event == ProgressEvent.BATCH_COMPLETED and not paused:
                paused.append(await harness.orchestrator.pause(snapshot.job_id))

        harness.orchestrator.publisher.subscribe(pause_after_first_batch)

        async def run_test():
            await harness.orchestrator.start()
            job = await harness.orchestrator.submit(JobRequest(items=_items(5)))
            await harness.orchestrator.drain()
            mid = await harness.job_service.get_job(job.job_id)

            resumed = await harness.orchestrator.resume(job.job_id)
            await harness.orchestrator.drain()
            return mid, resumed, await harness.job_service.get_job(job.job_id)

        mid, resumed, final = asyncio.run(run_test())

        assert paused == [True]
        assert mid.status == JobStatus.PAUSED
        assert mid.progress.current == 2
        assert resumed is True
        assert final.status == JobStatus.COMPLETED
        assert len(provider.calls) == 5
        names = harness.event_names(final.job_id)
        assert ProgressEvent.JOB_PAUSED in names
        assert names.index(ProgressEvent.JOB_RESUMED) > names.index(ProgressEvent.JOB_PAUSED)
        # No delay after the pausing boundary, one between the resumed batches
        assert harness.batch_sleeps == [10.0]

    def test_resume_keeps_failed_items_from_before_pause(self):
        provider = FakeProvider(found={"T01": set()})
        harness = Harness(provider, batch_size=2)
        paused = []

        async def pause_after_first_batch(snapshot):
            if snapshot.event == ProgressEvent.BATCH_COMPLETED and not paused:
                paused.append(await harness.orchestrator.pause(snapshot.job_id))

        harness.orchestrator.publisher.subscribe(pause_after_first_batch)

        async def run_test():
            await harness.orchestrator.start()
            job = await harness.orchestrator.submit(JobRequest(items=_items(4)))
            await harness.orchestrator.drain()
            await harness.orchestrator.resume(job.job_id)
            await harness.orchestrator.drain()
            return await harness.job_service.get_job(job.job_id)

        final = asyncio.run(run_test())

        assert final.status == JobStatus.COMPLETED
        assert final.progress.failed == ["T01"]
        assert final.progress.current == 4
        assert [c for c in provider.calls if c[0] == "T01"] == [("T01", P1.key), ("T01", P2.key)]

        currents = [e.current for e in harness.events if e.job_id == final.job_id]
        assert currents == sorted(currents)
        resumed = next(e for e in harness.events if e.event == ProgressEvent.JOB_RESUMED)
        assert resumed.current == 2
        assert resumed.failed == ["T01"]

    def test_cancel_running_job_stops_at_boundary(self):
        provider = FakeProvider()
        harness = Harness(provider, batch_size=2)

        async def cancel_after_first_batch(snapshot):
            if snapshot.event == ProgressEvent.BATCH_COMPLETED:
                await harness.orchestrator.cancel(snapshot.job_id)

        harness.orchestrator.publisher.subscribe(cancel_after_first_batch)

        async def run_test():
            job = await harness.run_to_end(_items(6))
            again = await harness.orchestrator.cancel(job.job_id)
            return job, again

        job, again = asyncio.run(run_test())

        assert job.status == JobStatus.CANCELLED
        assert job.progress.current == 2
        assert len(job.pending_items()) == 4
        assert provider.items_called() == {"T00", "T01"}
        assert harness.event_names(job.job_id).count(ProgressEvent.JOB_CANCELLED) == 1
        assert again is False

    def test_cancel_queued_job(self):
        harness = Harness(FakeProvider())

        async def run_test():
            orchestrator = harness.orchestrator
            orchestrator.slot.try_acquire("someone-else")
            job = await orchestrator.submit(JobRequest(items=["A"]))
            queued = orchestrator.queued_job_ids
            cancelled = await orchestrator.cancel(job.job_id)
            return job, queued, cancelled, orchestrator.queued_job_ids

        job, queued, cancelled, after = asyncio.run(run_test())

        assert queued == [job.job_id]
        assert cancelled is True
        assert after == []
        assert harness.event_names(job.job_id) == [ProgressEvent.JOB_CANCELLED]
        assert harness.provider.calls == []

    def test_illegal_control_calls_return_false(self):
        harness = Harness(FakeProvider())

        async def run_test():
            orchestrator = harness.orchestrator
            done = await harness.run_to_end(["B"])
            pending = await harness.job_service.create_job(JobRequest(items=["A"]))
            results = {
                "pause_pending": await orchestrator.pause(pending.job_id),
                "resume_pending": await orchestrator.resume(pending.job_id),
                "pause_unknown": await orchestrator.pause("missing"),
                "resume_unknown": await orchestrator.resume("missing"),
                "cancel_unknown": await orchestrator.cancel("missing"),
                "pause_done": await orchestrator.pause(done.job_id),
                "resume_done": await orchestrator.resume(done.job_id),
                "cancel_done": await orchestrator.cancel(done.job_id),
            }
            stored = await harness.job_service.get_job(pending.job_id)
            return results, stored, orchestrator.queued_job_ids

        results, stored, queued = asyncio.run(run_test())

        assert not any(results.values())
        assert stored.status == JobStatus.PENDING
        assert queued == []

    def test_resumed_job_goes_to_front_of_queue(self):
        harness = Harness(FakeProvider())

        async def run_test():
            orchestrator = harness.orchestrator
            service = harness.job_service
            orchestrator.slot.try_acquire("someone-else")

            a = await orchestrator.submit(JobRequest(items=["A"]))
            b = await orchestrator.submit(JobRequest(items=["B"]))
            c = await service.create_job(JobRequest(items=["C"]))
            c.mark_running()
            c.mark_paused()
            await service.save(c)

            assert await orchestrator.resume(c.job_id)
            queued = orchestrator.queued_job_ids

            orchestrator.slot.release("someone-else")
            orchestrator.kick()
            await orchestrator.drain()
            return [a.job_id, b.job_id, c.job_id], queued

        (a, b, c), queued = asyncio.run(run_test())

        assert queued == [c, a, b]
        started = [
            e.job_id for e in harness.events
            if e.event in (ProgressEvent.JOB_STARTED, ProgressEvent.JOB_RESUMED)
        ]
        assert started == [c, a, b]
        assert harness.events[0].event == ProgressEvent.JOB_RESUMED

    def test_paused_job_without_resume_is_not_run(self):
        harness = Harness(FakeProvider())

        async def run_test():
            service = harness.job_service
            job = await service.create_job(JobRequest(items=["A"]))
            job.mark_running()
            job.mark_paused()
            await service.save(job)
            result = await harness.orchestrator.run_job(job.job_id)
            return result, await service.get_job(job.job_id)

        result, job = asyncio.run(run_test())

        assert result is None
        assert job.status == JobStatus.PAUSED

    def test_get_progress(self):
        harness = Harness(FakeProvider())

        async def run_test():
            job = await harness.run_to_end(["A", "B"])
            return (
                await harness.orchestrator.get_progress(job.job_id),
                await harness.orchestrator.get_progress("missing"),
            )

        snapshot, missing = asyncio.run(run_test())

        assert snapshot.status == JobStatus.COMPLETED
        assert snapshot.current == 2
        assert snapshot.percent == 100.0
        assert missing is None

    def test_stats(self):
        harness = Harness(FakeProvider(), batch_size=2)
        asyncio.run(harness.run_to_end(_items(3)))

        stats = harness.orchestrator.stats()
        assert stats["jobs_run"] == 1
        assert stats["batches_run"] == 2
        assert stats["items_settled"] == 3
        assert stats["running_job_id"] is None
        assert stats["queued"] == 0

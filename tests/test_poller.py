"""Tests for progress polling."""

from uuid import uuid4

import pytest

from site_quality_audit.batch.poller import HTTPBatchReader, ProgressPoller
from site_quality_audit.batch.store import BatchStore
from site_quality_audit.core.errors import BatchNotFoundError
from site_quality_audit.core.types import AuditTarget, BatchStatus, JobStatus
from tests.helpers import FakeResponse, FakeSession, make_job, make_progress


class ScriptedReader:
    """Reader that replays a list of progress snapshots, then repeats the last."""

    def __init__(self, *progress) -> None:
        self.progress = list(progress)
        self.reads = 0

    async def get_batch(self, batch_id):
        index = min(self.reads, len(self.progress) - 1)
        self.reads += 1
        return self.progress[index]

    async def list_jobs(self, batch_id):
        return [make_job(batch_id, "a.com")]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestProgressPoller:
    """Test suite for ProgressPoller."""

    async def test_exhausts_after_max_attempts(self):
        """A batch that never finishes gets exactly max_attempts reads."""
        reader = ScriptedReader(make_progress(total=3, completed=1))
        sleep = RecordingSleep()
        poller = ProgressPoller(reader, interval_ms=2000, sleep=sleep)
        snapshots = []

        outcome = await poller.poll_batch(uuid4(), max_attempts=3, on_snapshot=snapshots.append)

        assert outcome.state == "exhausted"
        assert outcome.attempts == 3
        assert len(snapshots) == 3
        assert [s.attempt for s in snapshots] == [1, 2, 3]
        assert reader.reads == 3
        assert sleep.delays == [2.0, 2.0]

    async def test_stops_at_terminal_status(self):
        reader = ScriptedReader(
            make_progress(total=2),
            make_progress(total=2, completed=1),
            make_progress(total=2, completed=1, failed=1),
            make_progress(total=2, completed=2),
        )
        poller = ProgressPoller(reader, sleep=RecordingSleep())

        outcome = await poller.poll_batch(uuid4(), max_attempts=60)

        assert outcome.state == "terminal"
        assert outcome.attempts == 3
        assert outcome.last.batch.status == BatchStatus.COMPLETED
        assert reader.reads == 3

    async def test_failed_batch_is_terminal(self):
        reader = ScriptedReader(make_progress(total=2, status=BatchStatus.FAILED))
        poller = ProgressPoller(reader, sleep=RecordingSleep())

        outcome = await poller.poll_batch(uuid4())

        assert outcome.state == "terminal"
        assert outcome.attempts == 1

    async def test_async_snapshot_callback(self):
        reader = ScriptedReader(make_progress(total=1, completed=1))
        seen = []

        async def on_snapshot(snapshot) -> None:
            seen.append(snapshot.batch.status)

        await ProgressPoller(reader, sleep=RecordingSleep()).poll_batch(
            uuid4(), on_snapshot=on_snapshot
        )

        assert seen == [BatchStatus.COMPLETED]

    async def test_watch_can_be_abandoned(self):
        reader = ScriptedReader(make_progress(total=3))
        poller = ProgressPoller(reader, sleep=RecordingSleep())

        async for snapshot in poller.watch(uuid4(), max_attempts=60):
            assert snapshot.attempt == 1
            break

        assert reader.reads == 1

    async def test_finished_count_never_decreases(self, session_factory):
        store = BatchStore(session_factory)
        publisher_id = uuid4()
        created = await store.create_batch(
            [AuditTarget(publisher_id=publisher_id, site_name=s) for s in ("a", "b", "c")]
        )
        updates = iter(
            [
                (created.job_ids[0], JobStatus.COMPLETED, {"score": 80.0}),
                (created.job_ids[1], JobStatus.IN_PROGRESS, {}),
                (created.job_ids[1], JobStatus.FAILED, {"error_message": "crawl blocked"}),
                (created.job_ids[2], JobStatus.COMPLETED, {"score": 60.0}),
            ]
        )

        async def worker_step(seconds: float) -> None:
            job_id, status, result = next(updates)
            await store.update_job_status(job_id, status, **result)

        poller = ProgressPoller(store, interval_ms=10, max_attempts=10, sleep=worker_step)
        finished = [s.batch.finished_sites async for s in poller.watch(created.batch_id)]

        assert finished == sorted(finished)
        assert finished[-1] == 3
        assert all(f <= 3 for f in finished)


class TestHTTPBatchReader:
    """Test suite for HTTPBatchReader."""

    async def test_reads_wire_format(self):
        progress = make_progress(total=2, completed=1)
        job = make_job(progress.batch_id, "a.com", JobStatus.COMPLETED)
        session = FakeSession(
            FakeResponse(200, progress.model_dump(by_alias=True, mode="json")),
            FakeResponse(200, [job.model_dump(by_alias=True, mode="json")]),
        )
        reader = HTTPBatchReader(
            "https://api.example/", token="jwt", session=session  # type: ignore[arg-type]
        )

        batch = await reader.get_batch(progress.batch_id)
        jobs = await reader.list_jobs(progress.batch_id)

        assert batch == progress
        assert jobs == [job]
        assert session.calls[0]["url"] == f"https://api.example/batches/{progress.batch_id}"
        assert session.calls[1]["url"].endswith("/jobs")
        assert session.calls[0]["headers"] == {"Authorization": "Bearer jwt"}

    async def test_unknown_batch(self):
        session = FakeSession(FakeResponse(404, {"success": False, "error": "Batch not found"}))
        reader = HTTPBatchReader("https://api.example", session=session)  # type: ignore[arg-type]

        with pytest.raises(BatchNotFoundError):
            await reader.get_batch(uuid4())

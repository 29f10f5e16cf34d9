"""Tests for the rate limited dispatcher."""

import asyncio
import random
from uuid import uuid4

import aiohttp
import pytest

from site_quality_audit.batch.dispatcher import RateLimitedDispatcher
from site_quality_audit.core.errors import ConfigurationError
from site_quality_audit.core.types import DispatchFailed
from tests.helpers import FakeResponse, FakeSession, make_group


class RecordingSleep:
    """Injected sleep that records requested pauses without waiting."""

    def __init__(self, session: FakeSession | None = None) -> None:
        self.delays: list[float] = []
        self.session = session
        self.calls_before: list[int] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.session is not None:
            self.calls_before.append(len(self.session.calls))


def _dispatcher(session: FakeSession, sleep=None, **kwargs) -> RateLimitedDispatcher:
    return RateLimitedDispatcher(
        "https://worker.example/",
        session=session,  # type: ignore[arg-type]
        sleep=sleep or RecordingSleep(),
        rng=random.Random(7),
        **kwargs,
    )


class TestRateLimitedDispatcher:
    """Test suite for RateLimitedDispatcher."""

    @pytest.mark.unit
    def test_missing_worker_url(self):
        with pytest.raises(ConfigurationError, match="not configured"):
            RateLimitedDispatcher(None)
        with pytest.raises(ConfigurationError):
            RateLimitedDispatcher("")

    @pytest.mark.unit
    def test_endpoint_joins_path(self):
        dispatcher = RateLimitedDispatcher(
            "https://worker.example/", audit_path="audit-batch-sites"
        )

        assert dispatcher.endpoint == "https://worker.example/audit-batch-sites"

    async def test_dispatch_success(self):
        session = FakeSession(FakeResponse(202, '{"accepted": true}'))
        dispatcher = _dispatcher(session, worker_secret="s3cret")
        group = make_group("Acme", ["a.com", "b.com"])
        batch_id = uuid4()

        result = await dispatcher.dispatch(group, batch_id=batch_id, request_id="rid-1")

        assert result.queued
        assert result.error is None
        assert result.site_names == ["a.com", "b.com"]
        call = session.calls[0]
        assert call["url"] == "https://worker.example/audit-batch-sites"
        assert call["json"]["publisher_id"] == str(group.publisher.id)
        assert call["json"]["site_names"] == ["a.com", "b.com"]
        assert call["json"]["batch_id"] == str(batch_id)
        assert call["json"]["request_id"] == "rid-1"
        assert call["headers"]["Authorization"] == "Bearer s3cret"
        assert call["timeout"].total == 120.0

    async def test_non_2xx_body_is_reason_verbatim(self):
        session = FakeSession(FakeResponse(500, "rate limited"), FakeResponse(200, "ok"))
        dispatcher = _dispatcher(session)
        groups = [make_group("A"), make_group("B")]

        results = await dispatcher.dispatch_all(groups)

        assert len(session.calls) == 2
        assert results[0].error == "rate limited"
        assert isinstance(results[0].result, DispatchFailed)
        assert results[0].result.status_code == 500
        assert results[1].queued

    async def test_empty_error_body_uses_status(self):
        session = FakeSession(FakeResponse(503, ""))

        result = await _dispatcher(session).dispatch(make_group())

        assert result.error == "Worker responded with status 503"

    async def test_transport_errors_are_results(self):
        session = FakeSession(
            asyncio.TimeoutError(),
            aiohttp.ClientConnectionError("connection reset"),
            FakeResponse(200),
        )
        dispatcher = _dispatcher(session, timeout_seconds=30)

        results = await dispatcher.dispatch_all([make_group("A"), make_group("B"), make_group("C")])

        assert results[0].error == "Worker request timed out after 30s"
        assert results[1].error == "Worker request failed: connection reset"
        assert results[2].queued

    async def test_undecodable_error_body_is_isolated(self):
        session = FakeSession(FakeResponse(502, b"Bad gateway \xff\xfe"), FakeResponse(202))
        dispatcher = _dispatcher(session)

        results = await dispatcher.dispatch_all([make_group("A"), make_group("B")])

        assert len(session.calls) == 2
        assert results[0].result.status_code == 502
        assert results[0].error.startswith("Bad gateway ")
        assert "\ufffd" in results[0].error
        assert results[1].queued

    async def test_unexpected_error_is_a_failed_result(self):
        session = FakeSession(RuntimeError("worker client broke"), FakeResponse(200))

        results = await _dispatcher(session).dispatch_all([make_group("A"), make_group("B")])

        assert results[0].error == "worker client broke"
        assert results[1].queued

    async def test_delay_between_consecutive_dispatches(self):
        session = FakeSession()
        sleep = RecordingSleep(session)
        dispatcher = _dispatcher(session, sleep=sleep)
        groups = [make_group(f"P{i}") for i in range(5)]

        await dispatcher.dispatch_all(groups, min_delay_ms=2000, max_delay_ms=5000)

        assert len(sleep.delays) == 4
        assert all(2.0 <= d <= 5.0 for d in sleep.delays)
        # One pause after each request except the last
        assert sleep.calls_before == [1, 2, 3, 4]

    async def test_single_target_never_sleeps(self):
        session = FakeSession()
        sleep = RecordingSleep()

        await _dispatcher(session, sleep=sleep).dispatch_all([make_group()])

        assert sleep.delays == []

    async def test_dispatch_order_is_stable(self):
        session = FakeSession()
        groups = [make_group(name) for name in ("C", "A", "B")]

        results = await _dispatcher(session).dispatch_all(groups)

        assert [r.publisher.name for r in results] == ["C", "A", "B"]
        assert [c["json"]["publisher_id"] for c in session.calls] == [
            str(g.publisher.id) for g in groups
        ]

    async def test_on_result_called_before_pause(self):
        session = FakeSession()
        events: list[str] = []

        async def sleep(seconds: float) -> None:
            events.append("sleep")

        async def on_result(group, result) -> None:
            events.append(f"result:{group.publisher.name}")

        dispatcher = _dispatcher(session, sleep=sleep)
        await dispatcher.dispatch_all([make_group("A"), make_group("B")], on_result=on_result)

        assert events == ["result:A", "sleep", "result:B"]

    @pytest.mark.unit
    def test_next_delay_within_window(self):
        dispatcher = _dispatcher(FakeSession(), min_delay_ms=100, max_delay_ms=200)

        delays = [dispatcher.next_delay_ms() for _ in range(50)]

        assert all(100 <= d <= 200 for d in delays)
        assert dispatcher.next_delay_ms(0, 0) == 0

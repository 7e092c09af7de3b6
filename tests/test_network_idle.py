"""NetworkIdleDetector state machine, driven by a fake event source."""

from __future__ import annotations

import asyncio

import pytest

from render_export import ComputeResultTracker, IdleState, IdleTimeoutError, NetworkIdleDetector
from conftest import FakeEventSource, FakeRequest

EPS = 0.005


def run(coro):
    return asyncio.run(coro)


class TestNetworkIdleDetector:
    def test_no_requests_resolves_after_first_request_grace(self, events):
        async def scenario():
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=50, settle_grace_ms=500, hard_timeout_ms=2000
            )
            state = await detector.wait()
            return detector, state

        detector, state = run(scenario())
        assert state is IdleState.IDLE
        assert 50 - EPS * 1000 <= detector.elapsed_ms < 250
        assert events.listener_count() == 0

    def test_burst_resolves_settle_grace_after_last_finish(self, events):
        marks = {}

        async def scenario():
            loop = asyncio.get_running_loop()
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=100, settle_grace_ms=80, hard_timeout_ms=2000
            )

            def burst_start():
                for _ in range(5):
                    events.emit("request")

            def burst_finish():
                for _ in range(4):
                    events.emit("requestfinished")
                events.emit("requestfailed")
                marks["last_finish"] = loop.time()

            loop.call_later(0.01, burst_start)
            loop.call_later(0.03, burst_finish)
            await detector.wait()
            return detector

        detector = run(scenario())
        assert detector.state is IdleState.IDLE
        assert detector.requests_seen == 5
        assert detector.inflight == 0
        assert detector.resolved_at - marks["last_finish"] >= 0.08 - EPS

    def test_new_request_while_settling_restarts_settle_window(self, events):
        marks = {}

        async def scenario():
            loop = asyncio.get_running_loop()
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=100, settle_grace_ms=80, hard_timeout_ms=2000
            )

            def finish():
                events.emit("requestfinished")
                marks["last_finish"] = loop.time()

            loop.call_later(0.01, events.emit, "request")
            loop.call_later(0.02, events.emit, "requestfinished")
            loop.call_later(0.06, events.emit, "request")
            loop.call_later(0.09, finish)
            await detector.wait()
            return detector

        detector = run(scenario())
        assert detector.requests_seen == 2
        assert detector.resolved_at - marks["last_finish"] >= 0.08 - EPS

    def test_hanging_requests_time_out_and_detach(self, events):
        async def scenario():
            loop = asyncio.get_running_loop()
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=20, settle_grace_ms=20, hard_timeout_ms=150
            )
            loop.call_later(0.005, events.emit, "request")
            with pytest.raises(IdleTimeoutError):
                await detector.wait()
            return detector

        detector = run(scenario())
        assert detector.state is IdleState.TIMED_OUT
        assert 150 - EPS * 1000 <= detector.elapsed_ms < 400
        assert events.listener_count() == 0

        events.emit("requestfinished")
        events.emit("request")
        assert detector.inflight == 1
        assert detector.state is IdleState.TIMED_OUT

    def test_finish_without_start_never_goes_negative(self, events):
        async def scenario():
            loop = asyncio.get_running_loop()
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=60, settle_grace_ms=20, hard_timeout_ms=1000
            )
            loop.call_later(0.005, events.emit, "requestfinished")
            loop.call_later(0.006, events.emit, "requestfailed")
            await detector.wait()
            return detector

        detector = run(scenario())
        assert detector.inflight == 0
        assert detector.state is IdleState.IDLE

    def test_threshold_allows_long_polling_requests(self, events):
        async def scenario():
            loop = asyncio.get_running_loop()
            detector = NetworkIdleDetector(
                events,
                first_request_grace_ms=50,
                settle_grace_ms=30,
                hard_timeout_ms=1000,
                max_inflight_requests=1,
            )
            loop.call_later(0.005, events.emit, "request")
            loop.call_later(0.006, events.emit, "request")
            loop.call_later(0.01, events.emit, "requestfinished")
            return await detector.wait()

        assert run(scenario()) is IdleState.IDLE

    def test_negative_threshold_is_clamped(self, events):
        detector = NetworkIdleDetector(events, max_inflight_requests=-3)
        assert detector.max_inflight_requests == 0

    def test_cancelled_wait_releases_listeners(self, events):
        async def scenario():
            detector = NetworkIdleDetector(
                events, first_request_grace_ms=1000, settle_grace_ms=1000, hard_timeout_ms=5000
            )
            task = asyncio.ensure_future(detector.wait())
            await asyncio.sleep(0.01)
            assert events.listener_count() == 3
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())
        assert events.listener_count() == 0

    def test_close_before_wait_releases_listeners(self, events):
        async def scenario():
            detector = NetworkIdleDetector(events, first_request_grace_ms=1000)
            detector.start()
            assert events.listener_count() == 3
            detector.close()
            detector.close()

        run(scenario())
        assert events.listener_count() == 0

    def test_start_twice_is_an_error(self, events):
        async def scenario():
            detector = NetworkIdleDetector(events, first_request_grace_ms=10)
            detector.start()
            with pytest.raises(RuntimeError):
                detector.start()
            await detector.wait()

        run(scenario())


class TestComputeResultTracker:
    def test_counts_only_compute_batches(self):
        events = FakeEventSource()
        tracker = ComputeResultTracker()
        tracker.attach(events)

        batch = FakeRequest("http://app.test/api/computation/compute-batch?x=1")
        events.emit("request", batch)
        events.emit("request", batch)
        events.emit("request", FakeRequest("http://app.test/static/app.js"))
        events.emit("response", batch)

        assert tracker.requests == 2
        assert tracker.responses == 1
        assert tracker.completed == 1
        assert run(tracker.count()) == 1

        tracker.detach()
        tracker.detach()
        assert events.listener_count() == 0
        events.emit("response", batch)
        assert tracker.responses == 1

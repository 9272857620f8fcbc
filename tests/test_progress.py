"""Tests for progress aggregation and stage timeouts."""

import asyncio

import pytest

from reelcompose.errors import StageTimeoutError
from reelcompose.progress import Heartbeat, ProgressTracker, with_timeout


class TestProgressTracker:
    def test_weights_must_sum_to_100(self):
        with pytest.raises(ValueError, match="sum to 100"):
            ProgressTracker(None, {"a": 50, "b": 40})

    def test_stage_maps_into_its_slice(self):
        calls = []
        tracker = ProgressTracker(lambda p, l: calls.append((p, l)),
                                  {"load": 20, "render": 50, "encode": 30})
        tracker.stage("load").complete("Loaded")
        tracker.stage("render").update(0.5, "Rendering")
        assert calls == [(20.0, "Loaded"), (45.0, "Rendering")]

    def test_never_goes_backwards(self):
        calls = []
        tracker = ProgressTracker(lambda p, l: calls.append(p), {"a": 50, "b": 50})
        tracker.stage("b").update(0.5)
        tracker.stage("a").update(0.5)
        assert calls == [75.0, 75.0]

    def test_stage_fraction_is_monotonic(self):
        tracker = ProgressTracker(None, {"a": 100})
        stage = tracker.stage("a")
        stage.update(0.6)
        stage.update(0.3)
        assert stage.fraction == 0.6

    def test_unknown_stage(self):
        tracker = ProgressTracker(None, {"a": 100})
        with pytest.raises(KeyError, match="Unknown stage"):
            tracker.stage("b")

    def test_finish_reports_100(self):
        calls = []
        tracker = ProgressTracker(lambda p, l: calls.append((p, l)), {"a": 100})
        tracker.finish("Video ready")
        assert calls[-1] == (100.0, "Video ready")


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def work():
            return 7
        assert await with_timeout(work(), 1.0, "work") == 7

    @pytest.mark.asyncio
    async def test_none_means_unbounded(self):
        async def work():
            await asyncio.sleep(0.01)
            return "ok"
        assert await with_timeout(work(), None, "work") == "ok"

    @pytest.mark.asyncio
    async def test_timeout_raises_typed_error(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(StageTimeoutError, match="transcode") as exc_info:
            await with_timeout(slow(), 0.05, "transcode")
        assert exc_info.value.stage == "transcode"
        assert cancelled.is_set()


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_advances_and_caps(self):
        calls = []
        tracker = ProgressTracker(lambda p, l: calls.append(p), {"concat": 100})
        stage = tracker.stage("concat")
        async with Heartbeat(stage, "Joining", interval=0.01, step=0.3, cap=0.5):
            await asyncio.sleep(0.1)
        assert stage.fraction == 0.5
        assert max(calls) == 50.0

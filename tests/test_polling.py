"""
Tests for fixed-interval polling and progress tracking.
"""

import asyncio

import pytest

from core.exceptions import ProcessingError
from core.polling import poll_until
from core.progress_tracker import PipelineStage, ProgressTracker


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


def _fetcher(states):
    states = iter(states)

    async def fetch():
        return next(states)

    return fetch


class TestPollUntil:

    @pytest.mark.asyncio
    async def test_returns_first_done_state(self, sleeps):
        polled = []

        state = await poll_until(
            _fetcher(["validating", "in_progress", "completed"]),
            lambda s: s == "completed",
            interval_seconds=5,
            on_poll=lambda s, attempt: polled.append((s, attempt))
        )

        assert state == "completed"
        assert sleeps == [5, 5]
        assert polled[-1] == ("completed", 3)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, sleeps):
        with pytest.raises(ProcessingError) as exc_info:
            await poll_until(
                _fetcher(["in_progress"] * 5),
                lambda s: False,
                max_attempts=2,
                phase="embedding"
            )

        assert exc_info.value.phase == "embedding"
        assert len(sleeps) == 1


class TestProgressTracker:

    def test_updates_are_written_to_the_session(self, store, session_id):
        tracker = ProgressTracker(session_id, store)

        tracker.start_stage(PipelineStage.EMBEDDING, total=10, message="Generating embeddings")
        tracker.update(4)
        progress = store.sessions[session_id]["pipeline_progress"]

        assert progress["stage"] == "Embedding"
        assert progress["current"] == 4
        assert progress["total"] == 10
        assert progress["message"] == "Generating embeddings"
        assert "updatedAt" in progress
        assert tracker.current.progress == pytest.approx(0.4)

    def test_failing_callback_does_not_break_tracking(self, store, session_id):
        tracker = ProgressTracker(session_id, store)
        seen = []

        def broken(progress):
            raise RuntimeError("ui gone")

        tracker.add_callback(broken)
        tracker.add_callback(lambda progress: seen.append(progress.current))
        tracker.start_stage(PipelineStage.NAMING, total=2)
        tracker.complete_stage("done")

        assert seen == [0, 2]
        assert store.sessions[session_id]["pipeline_progress"]["message"] == "done"

    def test_update_before_start_is_ignored(self, store, session_id):
        ProgressTracker(session_id, store).update(3)
        assert "pipeline_progress" not in store.sessions[session_id]

"""Unit tests for maintenance jobs."""
from datetime import datetime, timedelta, timezone

import pytest

from chatview.maintenance import build_jobs, due_jobs, find_job, run_due_jobs, run_jobs
from chatview.store import Message

from .helpers import USER_ID


def at(hour, minute):
    return datetime(2026, 10, 19, hour, minute, tzinfo=timezone.utc)


class TestSchedule:
    """Tests for the job table."""

    def test_job_names(self):
        """Test the maintenance table order."""
        assert [job.name for job in build_jobs()] == [
            "score characters",
            "remove messages",
            "remove stories",
            "remove chats",
        ]

    def test_midnight_runs_everything(self):
        """Test that 00:00 UTC runs the hourly and daily jobs."""
        assert len(due_jobs(build_jobs(), at(0, 0))) == 4

    def test_top_of_hour_runs_scoring(self):
        """Test that other hours only score characters."""
        assert [job.name for job in due_jobs(build_jobs(), at(5, 0))] == ["score characters"]

    def test_off_minute_runs_nothing(self):
        """Test that nothing is due between slots."""
        assert due_jobs(build_jobs(), at(5, 30)) == []

    def test_naive_times_are_utc(self):
        """Test that naive datetimes are read as UTC."""
        job = find_job(build_jobs(), "remove chats")
        assert job.is_due(datetime(2026, 10, 19, 0, 0))

    def test_last_due(self):
        """Test the most recent slot before a time."""
        jobs = build_jobs()
        assert find_job(jobs, "score characters").last_due(at(5, 30)) == at(5, 0)
        assert find_job(jobs, "remove messages").last_due(at(5, 30)) == at(0, 0)
        assert find_job(jobs, "remove messages").interval == timedelta(days=1)

    def test_find_unknown_job(self):
        """Test that unknown names raise KeyError."""
        with pytest.raises(KeyError):
            find_job(build_jobs(), "vacuum")


class TestRun:
    """Tests for running jobs against a store."""

    @pytest.mark.asyncio
    async def test_run_jobs_reports_counts(self, memory_store, character):
        """Test that each job's affected rows are returned."""
        chat = await memory_store.get_or_create_chat(USER_ID, character.id)
        old = datetime.now(timezone.utc) - timedelta(days=60)
        await memory_store._put_message(Message(
            chat_id=chat.id, text="long ago", order=1, created_at=old
        ))

        results = await run_jobs(memory_store, build_jobs(retention_days=30))

        assert results == {
            "score characters": 2,
            "remove messages": 1,
            "remove stories": 0,
            "remove chats": 0,
        }

    @pytest.mark.asyncio
    async def test_run_due_jobs_off_schedule(self, memory_store):
        """Test that nothing runs when no job is due."""
        assert await run_due_jobs(memory_store, at(5, 30)) == {}

    @pytest.mark.asyncio
    async def test_run_due_jobs_hourly(self, memory_store):
        """Test that an hourly slot scores characters only."""
        assert await run_due_jobs(memory_store, at(7, 0)) == {"score characters": 2}

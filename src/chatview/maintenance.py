"""Periodic maintenance jobs.

Hides which housekeeping the store needs and when it is due. There is no
scheduler here: callers ask which jobs are due at a given time and run
them once.

Schedule (UTC):
- score characters: hourly at minute 0
- remove messages, remove stories, remove chats: daily at 00:00
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .config import RETENTION_DAYS
from .store.base import MessageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenanceJob:
    """A housekeeping task and its schedule.

    ``hour_utc`` of None means the job runs every hour.
    """

    name: str
    minute_utc: int
    hour_utc: int | None
    run: Callable[[MessageStore, datetime], Awaitable[int]]

    @property
    def interval(self) -> timedelta:
        return timedelta(hours=1) if self.hour_utc is None else timedelta(days=1)

    def is_due(self, now: datetime) -> bool:
        """Whether ``now`` falls on the job's scheduled minute."""
        now = _as_utc(now)
        if now.minute != self.minute_utc:
            return False
        return self.hour_utc is None or now.hour == self.hour_utc

    def last_due(self, now: datetime) -> datetime:
        """Most recent scheduled time at or before ``now``."""
        now = _as_utc(now).replace(second=0, microsecond=0)
        slot = now.replace(minute=self.minute_utc)
        if self.hour_utc is not None:
            slot = slot.replace(hour=self.hour_utc)
        if slot > now:
            slot -= self.interval
        return slot


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _cutoff(now: datetime, retention_days: int) -> datetime:
    return _as_utc(now) - timedelta(days=retention_days)


def build_jobs(retention_days: int = RETENTION_DAYS) -> list[MaintenanceJob]:
    """The maintenance table for a retention window."""

    async def score(store: MessageStore, now: datetime) -> int:
        return await store.score_characters()

    async def remove_messages(store: MessageStore, now: datetime) -> int:
        return await store.remove_old_messages(_cutoff(now, retention_days))

    async def remove_stories(store: MessageStore, now: datetime) -> int:
        return await store.remove_old_stories(_cutoff(now, retention_days))

    async def remove_chats(store: MessageStore, now: datetime) -> int:
        return await store.remove_old_chats(_cutoff(now, retention_days))

    return [
        MaintenanceJob("score characters", minute_utc=0, hour_utc=None, run=score),
        MaintenanceJob("remove messages", minute_utc=0, hour_utc=0, run=remove_messages),
        MaintenanceJob("remove stories", minute_utc=0, hour_utc=0, run=remove_stories),
        MaintenanceJob("remove chats", minute_utc=0, hour_utc=0, run=remove_chats),
    ]


def due_jobs(jobs: list[MaintenanceJob], now: datetime) -> list[MaintenanceJob]:
    return [job for job in jobs if job.is_due(now)]


def find_job(jobs: list[MaintenanceJob], name: str) -> MaintenanceJob:
    """Look up a job by name.

    Raises:
        KeyError: If no job has this name
    """
    for job in jobs:
        if job.name == name:
            return job
    raise KeyError(name)


async def run_jobs(
    store: MessageStore,
    jobs: list[MaintenanceJob],
    now: datetime | None = None
) -> dict[str, int]:
    """Run jobs in table order.

    Returns:
        Rows affected per job name
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    results: dict[str, int] = {}
    for job in jobs:
        count = await job.run(store, now)
        logger.info("Maintenance job %r affected %d rows", job.name, count)
        results[job.name] = count
    return results


async def run_due_jobs(
    store: MessageStore,
    now: datetime | None = None,
    retention_days: int = RETENTION_DAYS
) -> dict[str, int]:
    """Run every job scheduled for ``now``."""
    now = _as_utc(now or datetime.now(timezone.utc))
    return await run_jobs(store, due_jobs(build_jobs(retention_days), now), now)

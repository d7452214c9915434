"""Scheduler bridge -- runs plugin cron jobs against the global messenger.

Jobs never touch a user's conversation state directly. To talk to a user
they queue a conversation through ``GlobalMessenger.new_conversation`` and
go through the same per-user serializer as every other entry point.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .errors import FatalConfigurationError

if TYPE_CHECKING:
    from .messaging.messenger import GlobalMessenger

logger = logging.getLogger(__name__)

_DESCRIPTORS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_EVERY_RE = re.compile(r"^@every\s+((?:\d+[hms])+)$")
_DURATION_PART_RE = re.compile(r"(\d+)([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}

# Crontab counts weekdays from Sunday (0 and 7); APScheduler from Monday.
_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_WEEKDAY_PART_RE = re.compile(r"^(\*|[0-7]|[a-z]{3})(?:-([0-7]|[a-z]{3}))?(?:/(\d+))?$")


@dataclass(frozen=True)
class CronJob:
    """A timed action declared by a plugin.

    *spec* is a five-field crontab line (minute hour day month weekday), a
    descriptor such as ``@hourly``, or an interval such as ``@every 15m``.
    *action* must be safe to run concurrently with any conversation.
    """

    id: str
    name: str
    spec: str
    action: Callable[[GlobalMessenger], Awaitable[None]]


def build_trigger(spec: str) -> BaseTrigger:
    spec = spec.strip()
    match = _EVERY_RE.match(spec)
    if match:
        seconds = sum(
            int(n) * _UNIT_SECONDS[unit] for n, unit in _DURATION_PART_RE.findall(match.group(1))
        )
        if seconds <= 0:
            raise ValueError(f"Invalid cron spec {spec!r}: interval must be positive")
        return IntervalTrigger(seconds=seconds)

    expr = _DESCRIPTORS.get(spec, spec)
    if expr.startswith("@"):
        raise ValueError(f"Invalid cron spec {spec!r}: unknown descriptor")
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron spec {spec!r}: expected 5 fields, got {len(fields)}")
    minute, hour, day, month, weekday = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_day_of_week(weekday),
        )
    except ValueError as exc:
        raise ValueError(f"Invalid cron spec {spec!r}: {exc}") from exc


def _weekday_number(token: str) -> int:
    if token.isdigit():
        return int(token)
    try:
        return _WEEKDAYS.index(token)
    except ValueError:
        raise ValueError(f"unknown weekday {token!r}") from None


def _day_of_week(field: str) -> str:
    """Rewrite a crontab weekday field as APScheduler weekday names."""
    days: set[int] = set()
    for part in field.lower().split(","):
        match = _WEEKDAY_PART_RE.match(part)
        if not match:
            raise ValueError(f"bad weekday field {field!r}")
        first, last, step = match.groups()
        if first == "*":
            if last is not None:
                raise ValueError(f"bad weekday field {field!r}")
            lo, hi = 0, 6
        else:
            lo = _weekday_number(first)
            if last is not None:
                hi = _weekday_number(last)
            else:
                hi = 6 if step is not None else lo
        if hi < lo:
            raise ValueError(f"weekday range {part!r} runs backwards")
        stride = int(step) if step is not None else 1
        if stride <= 0:
            raise ValueError(f"weekday step must be positive in {part!r}")
        days.update(d % 7 for d in range(lo, hi + 1, stride))
    if len(days) == 7:
        return "*"
    return ",".join(_WEEKDAYS[d] for d in sorted(days))


class SchedulerBridge:
    def __init__(
        self,
        messenger: GlobalMessenger,
        scheduler: AsyncIOScheduler | None = None,
        *,
        on_fatal: Callable[[FatalConfigurationError], None] | None = None,
    ) -> None:
        self._messenger = messenger
        self._scheduler = scheduler or AsyncIOScheduler()
        self._on_fatal = on_fatal

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def add(self, job: CronJob) -> None:
        trigger = build_trigger(job.spec)
        self._scheduler.add_job(
            self.run_job,
            trigger,
            args=[job],
            id=job.id,
            name=job.name or job.id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )
        logger.info("Scheduled job %s (%s)", job.id, job.spec)

    def start(self, jobs: Iterable[CronJob]) -> None:
        for job in jobs:
            self.add(job)
        self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def run_job(self, job: CronJob) -> None:
        logger.debug("Running job %s", job.id)
        messenger = self._messenger.for_job()
        try:
            await job.action(messenger)
        except FatalConfigurationError as exc:
            if self._on_fatal is None:
                raise
            self._on_fatal(exc)
        except Exception:
            logger.exception("Job %s failed", job.id)
        finally:
            messenger.close()

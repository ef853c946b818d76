"""
Scheduled tasks

Wraps APScheduler jobs into tasks that can be started and stopped, and keeps
every task created by an application in a TaskPool for introspection.
"""
import inspect
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

# Coroutine functions are awaited, plain functions run in the threadpool
TaskAction = Callable[["Task"], Any]
TaskSchedule = Union[str, datetime, int, float, BaseTrigger]

ORPHAN = "orphan"

# Cron numbering: 0 and 7 are sunday
WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def cron_weekdays(field: str) -> str:
    """Translate numeric cron weekdays into names, since APScheduler counts 0 as monday."""
    names = []
    for part in field.split(","):
        match = re.fullmatch(r"(\d)(?:-(\d))?", part)
        if match:
            first = int(match.group(1))
            last = int(match.group(2) or first)
            if last > 7 or first > last:
                raise ValueError(f"Invalid day of week: {part!r}")
            names.extend(WEEKDAYS[day] for day in range(first, last + 1))
        elif re.search(r"\d", part):
            raise ValueError(f"Unsupported day of week: {part!r}, use weekday names")
        else:
            names.append(part)
    return ",".join(dict.fromkeys(names))


def make_trigger(schedule: TaskSchedule, timezone_name: str = "UTC") -> BaseTrigger:
    """Build a trigger from a cron expression (5 or 6 fields), a datetime or a Unix timestamp.

    The day of week follows cron numbering (0 or 7 is sunday) or takes names
    such as ``mon-fri``. Numeric weekdays with a step are rejected.
    """
    if isinstance(schedule, BaseTrigger):
        return schedule
    if isinstance(schedule, datetime):
        return DateTrigger(run_date=schedule, timezone=timezone_name)
    if isinstance(schedule, (int, float)):
        return DateTrigger(run_date=datetime.fromtimestamp(schedule, tz=timezone.utc))

    fields = schedule.split()
    if len(fields) == 5:
        fields.insert(0, "0")
    if len(fields) != 6:
        raise ValueError(f"Invalid schedule: {schedule!r}")
    second, minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        second=second, minute=minute, hour=hour,
        day=day, month=month, day_of_week=cron_weekdays(day_of_week),
        timezone=timezone_name,
    )


class TaskPool:
    """All tasks of an application, and the scheduler that fires them."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None, timezone_name: str = "UTC"):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone_name)
        self.timezone_name = timezone_name
        self._tasks: List["Task"] = []
        self._counter = 0

    def _next_id(self) -> int:
        task_id = self._counter
        self._counter += 1
        return task_id

    def add(self, task: "Task") -> None:
        self._tasks.append(task)

    @property
    def tasks(self) -> List["Task"]:
        return list(self._tasks)

    @property
    def count(self) -> int:
        return len(self._tasks)

    @property
    def running(self) -> List["Task"]:
        return [task for task in self._tasks if task.running]

    @property
    def stopped(self) -> List["Task"]:
        return [task for task in self._tasks if not task.running]

    def from_origin(self, origin: Optional[str]) -> List["Task"]:
        """Tasks created by the named origin; None or 'orphan' selects tasks without origin."""
        if not origin or origin.lower() == ORPHAN:
            return [task for task in self._tasks if not task.origin_name]
        return [task for task in self._tasks if task.origin_name == origin]

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(f"Scheduler started with {len(self.running)} running task(s)")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


class Task:
    """Scheduled action owned by a module (or orphan when origin_name is None)."""

    def __init__(
        self,
        pool: TaskPool,
        schedule: TaskSchedule,
        action: TaskAction,
        origin_name: Optional[str] = None,
        start: bool = False,
    ):
        self.pool = pool
        self.id = pool._next_id()
        self.origin_name = origin_name
        self.schedule = schedule
        self.action = action
        self.trigger = make_trigger(schedule, pool.timezone_name)
        self.last_call: Optional[datetime] = None
        self._job = None
        self.logger = logging.getLogger(f"{__name__}.{self.id}.{origin_name or ORPHAN}")

        pool.add(self)
        if start:
            self.start()

    def __repr__(self) -> str:
        return f"<Task #{self.id} ({self.origin_name or ORPHAN})>"

    @property
    def running(self) -> bool:
        # The scheduler drops date jobs once they fired
        return self._job is not None and self.pool.scheduler.get_job(self._job.id) is not None

    @property
    def next_call(self) -> Optional[datetime]:
        # Jobs added before the scheduler starts have no next run time yet
        return getattr(self._job, "next_run_time", None)

    def start(self) -> None:
        if self.running:
            return
        self._job = self.pool.scheduler.add_job(
            self.run,
            trigger=self.trigger,
            id=f"task-{self.id}",
            name=repr(self),
            replace_existing=True,
        )
        self.logger.info(f"Job started, next call: {self.next_call}")

    def stop(self) -> None:
        if self._job is None:
            return
        try:
            self._job.remove()
        except JobLookupError:
            self.logger.info("Job already finished")
        self._job = None
        self.logger.info("Job stopped")

    async def run(self) -> Any:
        """Run the action; failures are logged and never propagate to the scheduler.

        Synchronous actions run in the threadpool so database work does not
        block the event loop.
        """
        self.last_call = datetime.now(timezone.utc)
        self.logger.info("Performing action")
        try:
            if inspect.iscoroutinefunction(self.action):
                result = await self.action(self)
            else:
                result = await run_in_threadpool(self.action, self)
        except Exception:
            self.logger.exception(f"Action of {self!r} failed")
            return None
        self.logger.info(f"Action performed, next call: {self.next_call}")
        return result

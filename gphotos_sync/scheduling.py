"""
Trigger scheduling for Google Photos Sync.

A background APScheduler posts JobTask messages onto a TaskQueue; a single
coordination thread takes them off one at a time and hands them to the sync
driver. Triggers never preempt a running task.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import AppConfig
from .errors import ConfigError

log = logging.getLogger(__name__)


class TaskKind(str, Enum):
    REFRESH_TOKEN = "refresh_token"
    SEARCH = "search"
    DOWNLOAD = "download"
    RECONCILE = "reconcile"


@dataclass(frozen=True)
class JobTask:
    """One unit of work for the sync driver."""
    kind: TaskKind
    days_back: int = 0
    limit: int = 0
    count: int = 0

    @classmethod
    def refresh_token(cls) -> "JobTask":
        return cls(TaskKind.REFRESH_TOKEN)

    @classmethod
    def search(cls, days_back: int, limit: int) -> "JobTask":
        return cls(TaskKind.SEARCH, days_back=days_back, limit=limit)

    @classmethod
    def download(cls, count: int) -> "JobTask":
        return cls(TaskKind.DOWNLOAD, count=count)

    @classmethod
    def reconcile(cls) -> "JobTask":
        return cls(TaskKind.RECONCILE)


class TaskQueue:
    """
    FIFO of JobTasks that holds at most one pending task per kind.

    If a kind is already waiting (e.g. a slow download let two download
    triggers fire), the newer trigger is dropped.
    """

    def __init__(self):
        self._queue: "queue.Queue[Optional[JobTask]]" = queue.Queue()
        self._pending = set()
        self._lock = threading.Lock()

    def put(self, task: JobTask) -> bool:
        """Enqueue a task. Returns False if one of the same kind is already pending."""
        with self._lock:
            if task.kind in self._pending:
                log.debug("Skipping %s trigger, one is already pending", task.kind.value)
                return False
            self._pending.add(task.kind)
        self._queue.put(task)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[JobTask]:
        """Block for the next task. None means the queue was closed."""
        task = self._queue.get(timeout=timeout)
        if task is not None:
            with self._lock:
                self._pending.discard(task.kind)
        return task

    def close(self):
        """Wake the consumer and make it stop."""
        self._queue.put(None)

    def __len__(self) -> int:
        return self._queue.qsize()


def parse_schedule(expression: str) -> CronTrigger:
    """
    Parse a 5-field crontab expression (UTC).

    Raises:
        ConfigError: If the expression is invalid
    """
    try:
        return CronTrigger.from_crontab(expression, timezone="UTC")
    except ValueError as e:
        raise ConfigError(f"Invalid schedule {expression!r}: {e}") from e


def build_jobs(config: AppConfig) -> List[Tuple[str, CronTrigger, JobTask]]:
    """
    Turn the schedules in config into (job id, trigger, task) triples.

    Jobs with an empty schedule are left out.

    Raises:
        ConfigError: If any schedule is invalid
    """
    candidates = [
        ("refresh_token", config.refresh_token_schedule, JobTask.refresh_token()),
        (
            "search",
            config.search_new_items_schedule,
            JobTask.search(config.search_days_back, config.search_limit),
        ),
        ("download", config.download_photos_schedule, JobTask.download(config.download_count)),
        ("reconcile", config.reconcile_schedule, JobTask.reconcile()),
    ]

    jobs = []
    for job_id, expression, task in candidates:
        if not expression or not expression.strip():
            continue
        jobs.append((job_id, parse_schedule(expression), task))
    return jobs


class TaskScheduler:
    """Posts JobTasks onto a TaskQueue according to the configured schedules."""

    def __init__(self, config: AppConfig, tasks: TaskQueue):
        self.tasks = tasks
        # Validate every schedule before anything starts
        self.jobs = build_jobs(config)
        self._scheduler = BackgroundScheduler(timezone="UTC")

    def start(self):
        for job_id, trigger, task in self.jobs:
            self._scheduler.add_job(
                self.tasks.put,
                trigger,
                args=[task],
                id=job_id,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=30,
                replace_existing=True,
            )
            log.info("Scheduled %s: %s", job_id, trigger)
        self._scheduler.start()

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)


def run_task_receiver(tasks: TaskQueue, handle: Callable[[JobTask], None]):
    """
    Consume tasks one at a time until the queue is closed.

    Exceptions raised by handle propagate and stop the loop; the driver is
    expected to absorb per-cycle failures itself.
    """
    while True:
        task = tasks.get()
        if task is None:
            log.info("Task queue closed")
            return
        log.info("Running %s task", task.kind.value)
        handle(task)

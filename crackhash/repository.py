"""In-memory storage of hash crack tasks."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional, Union

from .entity import HashCrackTask, TaskStatus

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base class of the repository errors."""


class TaskIsNoneError(RepositoryError):
    def __init__(self) -> None:
        super().__init__("crack task is none")


class TaskNotFoundError(RepositoryError):
    def __init__(self) -> None:
        super().__init__("crack task not found")


class TaskExistsError(RepositoryError):
    def __init__(self) -> None:
        super().__init__("crack task already exists")


def _now_like(moment: datetime) -> datetime:
    """Current time, aware or naive to match the given moment."""
    return datetime.now(moment.tzinfo)


class InMemoryTaskRepository:
    """Thread-safe dictionary of tasks keyed by their id."""

    def __init__(self) -> None:
        self._tasks: dict[str, HashCrackTask] = {}
        self._lock = threading.RLock()

    def _by_creation(self) -> list[HashCrackTask]:
        return sorted(self._tasks.values(), key=lambda task: task.created_at)

    def get_all_by_hash_and_max_length(self, hash_value: str, max_length: int) -> list[HashCrackTask]:
        """Return in-progress tasks for this hash and length, oldest first."""
        with self._lock:
            logger.debug("get all pending crack tasks: hash=%s max_length=%d", hash_value, max_length)
            return [
                task
                for task in self._by_creation()
                if task.status is TaskStatus.IN_PROGRESS
                and task.hash == hash_value
                and task.max_length == max_length
            ]

    def count_by_status(self, status: TaskStatus) -> int:
        with self._lock:
            logger.debug("count crack tasks by status: %s", status)
            return sum(1 for task in self._tasks.values() if task.status == status)

    def get_all_finished(self) -> list[HashCrackTask]:
        """Return in-progress tasks whose deadline has passed, oldest first."""
        with self._lock:
            logger.debug("get all finished crack tasks")
            return [
                task
                for task in self._by_creation()
                if task.status is TaskStatus.IN_PROGRESS
                and task.finished_at is not None
                and task.finished_at < _now_like(task.finished_at)
            ]

    def get(self, task_id: str) -> HashCrackTask:
        with self._lock:
            logger.debug("get crack task: id=%s", task_id)
            try:
                return self._tasks[task_id]
            except KeyError:
                raise TaskNotFoundError() from None

    def create(self, task: Optional[HashCrackTask]) -> None:
        with self._lock:
            if task is None:
                raise TaskIsNoneError()
            logger.debug("insert crack task: id=%s", task.id)
            if task.id in self._tasks:
                raise TaskExistsError()
            self._tasks[task.id] = task

    def update(self, task: Optional[HashCrackTask]) -> None:
        with self._lock:
            if task is None:
                raise TaskIsNoneError()
            logger.debug("update crack task: id=%s", task.id)
            if task.id not in self._tasks:
                raise TaskNotFoundError()
            self._tasks[task.id] = task

    def delete_all_expired(self, max_age: Union[timedelta, float, int]) -> None:
        """Remove every task created longer than max_age ago."""
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        with self._lock:
            logger.debug("delete all expired crack tasks: max_age=%s", max_age)
            expired = [
                task_id
                for task_id, task in self._tasks.items()
                if _now_like(task.created_at) - task.created_at > max_age
            ]
            for task_id in expired:
                del self._tasks[task_id]
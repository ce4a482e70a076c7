"""Stored records of hash crack tasks and their parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SubtaskStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "SubtaskStatus":
        """Return the status named by value, UNKNOWN for anything else."""
        if value in (cls.SUCCESS.value, cls.ERROR.value):
            return cls(value)
        return cls.UNKNOWN


class TaskStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    PARTIAL_READY = "PARTIAL_READY"
    READY = "READY"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "TaskStatus":
        """Return the status named by value, UNKNOWN for anything else."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class HashCrackSubtask:
    part_number: int
    status: SubtaskStatus
    data: list[str] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass
class HashCrackTask:
    id: str
    hash: str = ""
    max_length: int = 0
    part_count: int = 0
    subtasks: dict[int, HashCrackSubtask] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.IN_PROGRESS
    reason: Optional[str] = None
    finished_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
"""Manager side of hash cracking: task lifecycle and dispatch to workers."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any, Iterable, Protocol, Sequence

from .config import ManagerTaskConfig
from .entity import HashCrackSubtask, HashCrackTask, SubtaskStatus, TaskStatus
from .models import (
    Alphabet,
    ErrorOutput,
    HashCrackTaskIDOutput,
    HashCrackTaskInput,
    HashCrackTaskStatusOutput,
    HashCrackTaskWebhookInput,
    ValidationError,
    WorkerTaskInput,
)
from .repository import TaskNotFoundError as _RepoTaskNotFoundError

logger = logging.getLogger(__name__)

ALPHABET = "abcdefghijklmnopqrstuvwxyz1234567890"
WORKER_TASK_PATH = "/internal/api/worker/hash/crack/task"


class TooManyTasksError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("too many tasks")


class TaskNotFoundError(LookupError):
    def __init__(self) -> None:
        super().__init__("task not found")


class _Repository(Protocol):
    def get_all_by_hash_and_max_length(self, hash_value: str, max_length: int) -> list: ...
    def count_by_status(self, status: TaskStatus) -> int: ...
    def get_all_finished(self) -> list: ...
    def get(self, task_id: str) -> HashCrackTask: ...
    def create(self, task: HashCrackTask) -> None: ...
    def update(self, task: HashCrackTask) -> None: ...
    def delete_all_expired(self, max_age: Any) -> None: ...


class _Splitter(Protocol):
    def split(self, word_max_length: int, alphabet_length: int) -> int: ...


class _Client(Protocol):
    def post(self, path: str, **kwargs: Any) -> Any: ...


def build_worker_request(task: HashCrackTask, part_number: int, alphabet: str) -> WorkerTaskInput:
    """Build the request sending one part of the task to a worker."""
    return WorkerTaskInput(
        request_id=task.id,
        hash=task.hash,
        max_length=task.max_length,
        alphabet=Alphabet(symbols=list(alphabet)),
        part_number=part_number,
        part_count=task.part_count,
    )


def _ordered(subtasks: dict[int, HashCrackSubtask]) -> list[HashCrackSubtask]:
    return [subtasks[part] for part in sorted(subtasks)]


def _status_output(task: HashCrackTask) -> HashCrackTaskStatusOutput:
    data: list[str] = []
    if task.status in (TaskStatus.READY, TaskStatus.PARTIAL_READY):
        data = [word for subtask in _ordered(task.subtasks) for word in subtask.data]
    return HashCrackTaskStatusOutput(status=str(task.status), data=data)


def _response_error(response: Any) -> str:
    try:
        return ErrorOutput.from_xml(response.content).message
    except ValidationError:
        pass
    try:
        return ErrorOutput.from_dict(response.json()).message
    except (ValidationError, ValueError, json.JSONDecodeError):
        return response.text


def _success_subtask(webhook: HashCrackTaskWebhookInput) -> HashCrackSubtask:
    words = list(webhook.answer.words) if webhook.answer is not None else []
    return HashCrackSubtask(part_number=webhook.part_number, status=SubtaskStatus.SUCCESS, data=words)


def _error_subtask(webhook: HashCrackTaskWebhookInput) -> HashCrackSubtask:
    return HashCrackSubtask(
        part_number=webhook.part_number,
        status=SubtaskStatus.ERROR,
        data=[],
        reason=webhook.error,
    )


class HashCrackService:
    """Creates tasks, dispatches their parts and collects the results."""

    def __init__(
        self,
        config: ManagerTaskConfig,
        client: _Client,
        repository: _Repository,
        splitter: _Splitter,
    ) -> None:
        self._config = config
        self._client = client
        self._repository = repository
        self._splitter = splitter

    def create_task(self, task_input: HashCrackTaskInput) -> HashCrackTaskIDOutput:
        """Create a task, or return the in-progress one for the same hash and length."""
        logger.info("create task: hash=%s max_length=%d", task_input.hash, task_input.max_length)

        try:
            same = self._repository.get_all_by_hash_and_max_length(
                task_input.hash, task_input.max_length
            )
        except Exception:
            logger.warning("failed to get same tasks", exc_info=True)
            same = []
        if same:
            logger.info("same task already exists")
            return HashCrackTaskIDOutput(request_id=same[0].id)

        try:
            in_progress = self._repository.count_by_status(TaskStatus.IN_PROGRESS)
        except Exception:
            logger.exception("failed to count in progress tasks")
            raise
        if in_progress >= self._config.limit:
            logger.error("failed to create task: too many tasks")
            raise TooManyTasksError()

        try:
            part_count = self._splitter.split(task_input.max_length, len(ALPHABET))
        except Exception:
            logger.exception("failed to split task")
            raise

        task = HashCrackTask(
            id=str(uuid.uuid4()),
            hash=task_input.hash,
            max_length=task_input.max_length,
            part_count=part_count,
            status=TaskStatus.IN_PROGRESS,
        )
        try:
            self._repository.create(task)
        except Exception:
            logger.exception("failed to create task")
            raise

        threading.Thread(
            target=self._start_execute_task, args=(task,), name=f"task:{task.id}", daemon=True
        ).start()

        return HashCrackTaskIDOutput(request_id=task.id)

    def get_task_status(self, task_id: str) -> HashCrackTaskStatusOutput:
        """Return the status of a task and, once ready, the words found."""
        logger.info("get task status: id=%s", task_id)
        try:
            task = self._repository.get(task_id)
        except _RepoTaskNotFoundError as exc:
            logger.error("failed to get task: %s", exc)
            raise TaskNotFoundError() from exc
        return _status_output(task)

    def save_result_subtask(self, webhook: HashCrackTaskWebhookInput) -> None:
        """Store the result of one part and settle the task once every part reported."""
        logger.info(
            "save result subtask: id=%s part_number=%d", webhook.request_id, webhook.part_number
        )
        task = self._repository.get(webhook.request_id)

        if webhook.error is not None:
            task.subtasks[webhook.part_number] = _error_subtask(webhook)
        else:
            task.subtasks[webhook.part_number] = _success_subtask(webhook)
        self._repository.update(task)

        logger.debug("check if task is finished")
        if len(task.subtasks) != task.part_count:
            return

        statuses = [subtask.status for subtask in task.subtasks.values()]
        has_success = SubtaskStatus.SUCCESS in statuses
        has_error = any(status is not SubtaskStatus.SUCCESS for status in statuses)

        if has_error and has_success:
            task.status = TaskStatus.PARTIAL_READY
        elif has_error:
            self._mark_error(task)
        elif has_success:
            task.status = TaskStatus.READY

        self._repository.update(task)
        logger.info("task is finished: id=%s status=%s", task.id, task.status)

    def finish_timeout_tasks(self) -> None:
        """Mark every task whose deadline passed as failed by timeout."""
        logger.info("finish timeout tasks")
        tasks = self._repository.get_all_finished()
        if not tasks:
            logger.debug("no finished tasks found")
            return

        errors = []
        for task in tasks:
            self._mark_error_with_reason(task, "timeout")
            try:
                self._repository.update(task)
            except Exception as exc:
                logger.exception("failed to update task")
                errors.append(exc)

        if errors:
            details = "; ".join(str(error) for error in errors)
            raise RuntimeError(f"failed to finish timeout tasks: {details}") from errors[0]

    def delete_expired_tasks(self) -> None:
        """Remove tasks older than the configured maximum age."""
        logger.info("delete expired tasks")
        self._repository.delete_all_expired(self._config.max_age)

    def _start_execute_task(self, task: HashCrackTask) -> None:
        logger.debug("start execute task: id=%s", task.id)
        for part in range(task.part_count):
            try:
                self._send_task_to_worker(build_worker_request(task, part, ALPHABET))
            except Exception as exc:
                task.subtasks[part] = HashCrackSubtask(
                    part_number=part, status=SubtaskStatus.ERROR, data=[], reason=str(exc)
                )
                try:
                    self._repository.update(task)
                except Exception:
                    logger.exception("failed to update task")

    def _send_task_to_worker(self, worker_input: WorkerTaskInput) -> None:
        logger.debug("send task to worker: id=%s", worker_input.request_id)
        try:
            response = self._client.post(
                WORKER_TASK_PATH,
                data=worker_input.to_xml().encode("utf-8"),
                headers={"Content-Type": "application/xml"},
            )
        except Exception as exc:
            logger.error("failed to send task to worker: %s", exc)
            raise RuntimeError(f"failed to send task to worker: {exc}") from exc

        if response.status_code >= 400:
            message = _response_error(response)
            logger.error("failed to execute task: %s", message)
            raise RuntimeError(f"failed to execute task: {message}")

    @staticmethod
    def _mark_error(task: HashCrackTask) -> None:
        reasons: Iterable[str] = (
            subtask.reason for subtask in _ordered(task.subtasks) if subtask.reason is not None
        )
        reason = ""
        for item in reasons:
            reason = f"{reason}; {item}"
        if task.reason is not None:
            reason = f"{task.reason}; {reason}"
        task.status = TaskStatus.ERROR
        task.reason = reason

    @staticmethod
    def _mark_error_with_reason(task: HashCrackTask, reason: str) -> None:
        if task.reason is not None:
            reason = f"{task.reason}; {reason}"
        task.status = TaskStatus.ERROR
        task.reason = reason


__all__: Sequence[str] = (
    "ALPHABET",
    "HashCrackService",
    "TaskNotFoundError",
    "TooManyTasksError",
    "build_worker_request",
)
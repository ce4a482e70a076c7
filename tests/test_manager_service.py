import hashlib
import json
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
import requests

from crackhash import repository as repo_module
from crackhash.config import ManagerTaskConfig, TaskSplitConfig
from crackhash.entity import HashCrackSubtask, HashCrackTask, SubtaskStatus, TaskStatus
from crackhash.manager_service import (
    ALPHABET,
    WORKER_TASK_PATH,
    HashCrackService,
    TaskNotFoundError,
    TooManyTasksError,
    build_worker_request,
)
from crackhash.models import (
    Answer,
    ErrorOutput,
    HashCrackTaskInput,
    HashCrackTaskWebhookInput,
    WorkerTaskInput,
)
from crackhash.repository import InMemoryTaskRepository

HASH = hashlib.md5(b"hash").hexdigest()


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content

    @property
    def text(self):
        return self.content.decode("utf-8")

    def json(self):
        return json.loads(self.content)


class FakeClient:
    def __init__(self, response=None, error=None):
        self.calls = []
        self._lock = threading.Lock()
        self._response = response or FakeResponse()
        self._error = error

    def post(self, path, **kwargs):
        with self._lock:
            self.calls.append((path, kwargs))
        if self._error is not None:
            raise self._error
        return self._response


class FakeSplitter:
    def __init__(self, parts=1, error=None):
        self.parts = parts
        self.error = error
        self.calls = []

    def split(self, word_max_length, alphabet_length):
        self.calls.append((word_max_length, alphabet_length))
        if self.error is not None:
            raise self.error
        return self.parts


class ScriptedRepo:
    def __init__(self, failures=None, finished=None):
        self.inner = InMemoryTaskRepository()
        self.failures = failures or {}
        self.finished = finished
        self.updates = 0

    def _check(self, name):
        if name in self.failures:
            raise self.failures[name]

    def get_all_by_hash_and_max_length(self, hash_value, max_length):
        self._check("get_all_by_hash_and_max_length")
        return self.inner.get_all_by_hash_and_max_length(hash_value, max_length)

    def count_by_status(self, status):
        self._check("count_by_status")
        return self.inner.count_by_status(status)

    def get_all_finished(self):
        self._check("get_all_finished")
        return list(self.finished) if self.finished is not None else self.inner.get_all_finished()

    def get(self, task_id):
        self._check("get")
        return self.inner.get(task_id)

    def create(self, task):
        self._check("create")
        self.inner.create(task)

    def update(self, task):
        self.updates += 1
        self._check("update")
        if self.finished is None:
            self.inner.update(task)

    def delete_all_expired(self, max_age):
        self._check("delete_all_expired")
        self.inner.delete_all_expired(max_age)


def make_service(repo=None, client=None, splitter=None, limit=10):
    config = ManagerTaskConfig(
        split=TaskSplitConfig(strategy="chunkBased", chunk_size=10),
        timeout=timedelta(hours=1),
        limit=limit,
        max_age=timedelta(hours=24),
        finish_delay=timedelta(minutes=1),
    )
    return HashCrackService(
        config,
        client or FakeClient(),
        repo if repo is not None else InMemoryTaskRepository(),
        splitter or FakeSplitter(),
    )


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_create_task_returns_existing_task():
    repo = InMemoryTaskRepository()
    repo.create(HashCrackTask(id="existing", hash=HASH, max_length=5))
    service = make_service(repo=repo)

    output = service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert output.request_id == "existing"
    assert repo.count_by_status(TaskStatus.IN_PROGRESS) == 1


def test_create_task_new_task_dispatches_every_part():
    repo = InMemoryTaskRepository()
    client = FakeClient()
    splitter = FakeSplitter(parts=3)
    service = make_service(repo=repo, client=client, splitter=splitter)

    output = service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert output.request_id
    task = repo.get(output.request_id)
    assert task.hash == HASH
    assert task.part_count == 3
    assert task.status is TaskStatus.IN_PROGRESS
    assert splitter.calls == [(5, len(ALPHABET))]

    assert wait_until(lambda: len(client.calls) == 3)
    assert {path for path, _ in client.calls} == {WORKER_TASK_PATH}
    sent = [WorkerTaskInput.from_xml(kwargs["data"]) for _, kwargs in client.calls]
    assert sorted(item.part_number for item in sent) == [0, 1, 2]
    assert all(item.alphabet.symbols == list(ALPHABET) for item in sent)
    assert all(item.request_id == output.request_id for item in sent)


def test_create_task_ignores_lookup_failure():
    repo = ScriptedRepo(failures={"get_all_by_hash_and_max_length": RuntimeError("lookup")})
    service = make_service(repo=repo)

    output = service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert repo.inner.get(output.request_id).hash == HASH


def test_create_task_count_error():
    expected = RuntimeError("count failed")
    service = make_service(repo=ScriptedRepo(failures={"count_by_status": expected}))

    with pytest.raises(RuntimeError) as exc_info:
        service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert exc_info.value is expected


def test_create_task_too_many_tasks():
    repo = InMemoryTaskRepository()
    for index in range(10):
        repo.create(HashCrackTask(id=f"task-{index}", hash=f"other-{index}", max_length=5))
    service = make_service(repo=repo, limit=10)

    with pytest.raises(TooManyTasksError):
        service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))


def test_create_task_split_error():
    expected = RuntimeError("split failed")
    service = make_service(splitter=FakeSplitter(error=expected))

    with pytest.raises(RuntimeError) as exc_info:
        service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert exc_info.value is expected


def test_create_task_create_error():
    expected = RuntimeError("create failed")
    service = make_service(repo=ScriptedRepo(failures={"create": expected}))

    with pytest.raises(RuntimeError) as exc_info:
        service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert exc_info.value is expected


def test_worker_error_response_marks_subtask_failed():
    body = ErrorOutput(message="boom", status=500, path=WORKER_TASK_PATH).to_xml().encode()
    repo = InMemoryTaskRepository()
    service = make_service(repo=repo, client=FakeClient(response=FakeResponse(500, body)))

    output = service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert wait_until(lambda: 0 in repo.get(output.request_id).subtasks)
    subtask = repo.get(output.request_id).subtasks[0]
    assert subtask.status is SubtaskStatus.ERROR
    assert subtask.data == []
    assert subtask.reason == "failed to execute task: boom"


def test_worker_connection_error_marks_subtask_failed():
    repo = InMemoryTaskRepository()
    client = FakeClient(error=requests.ConnectionError("refused"))
    service = make_service(repo=repo, client=client)

    output = service.create_task(HashCrackTaskInput(hash=HASH, max_length=5))

    assert wait_until(lambda: 0 in repo.get(output.request_id).subtasks)
    assert repo.get(output.request_id).subtasks[0].reason == "failed to send task to worker: refused"


def test_get_task_status_ready():
    repo = InMemoryTaskRepository()
    repo.create(
        HashCrackTask(
            id="123",
            status=TaskStatus.READY,
            subtasks={0: HashCrackSubtask(0, SubtaskStatus.SUCCESS, ["word1", "word2"])},
        )
    )
    output = make_service(repo=repo).get_task_status("123")

    assert output.status == "READY"
    assert output.data == ["word1", "word2"]


def test_get_task_status_in_progress_hides_data():
    repo = InMemoryTaskRepository()
    repo.create(
        HashCrackTask(
            id="123",
            subtasks={0: HashCrackSubtask(0, SubtaskStatus.SUCCESS, ["word1"])},
        )
    )
    output = make_service(repo=repo).get_task_status("123")

    assert output.status == "IN_PROGRESS"
    assert output.data == []


def test_get_task_status_not_found():
    with pytest.raises(TaskNotFoundError):
        make_service().get_task_status("123")


@pytest.mark.parametrize(
    "webhook_success, existing_status, expected",
    [
        (True, SubtaskStatus.SUCCESS, TaskStatus.READY),
        (True, SubtaskStatus.ERROR, TaskStatus.PARTIAL_READY),
        (False, SubtaskStatus.SUCCESS, TaskStatus.PARTIAL_READY),
        (False, SubtaskStatus.ERROR, TaskStatus.ERROR),
    ],
)
def test_save_result_finishes_task(webhook_success, existing_status, expected):
    repo = InMemoryTaskRepository()
    repo.create(
        HashCrackTask(
            id="123",
            part_count=2,
            subtasks={0: HashCrackSubtask(part_number=0, status=existing_status)},
        )
    )
    webhook = HashCrackTaskWebhookInput(request_id="123", part_number=1)
    if webhook_success:
        webhook.answer = Answer(words=["word1", "word2"])
    else:
        webhook.error = "error"

    make_service(repo=repo).save_result_subtask(webhook)

    assert repo.get("123").status is expected


def test_save_result_ready_exposes_words():
    repo = InMemoryTaskRepository()
    repo.create(
        HashCrackTask(
            id="123",
            part_count=2,
            subtasks={0: HashCrackSubtask(part_number=0, status=SubtaskStatus.SUCCESS)},
        )
    )
    service = make_service(repo=repo)
    service.save_result_subtask(
        HashCrackTaskWebhookInput(request_id="123", part_number=1, answer=Answer(["word1", "word2"]))
    )

    assert service.get_task_status("123").data == ["word1", "word2"]


def test_save_result_error_collects_reasons():
    repo = InMemoryTaskRepository()
    repo.create(
        HashCrackTask(
            id="123",
            part_count=2,
            subtasks={0: HashCrackSubtask(part_number=0, status=SubtaskStatus.ERROR)},
        )
    )
    make_service(repo=repo).save_result_subtask(
        HashCrackTaskWebhookInput(request_id="123", part_number=1, error="error")
    )

    task = repo.get("123")
    assert task.status is TaskStatus.ERROR
    assert task.reason == "; error"


def test_save_result_not_finished():
    repo = InMemoryTaskRepository()
    repo.create(HashCrackTask(id="123", part_count=2))

    make_service(repo=repo).save_result_subtask(
        HashCrackTaskWebhookInput(request_id="123", part_number=0, answer=Answer(["word1", "word2"]))
    )

    task = repo.get("123")
    assert len(task.subtasks) == 1
    assert task.status is TaskStatus.IN_PROGRESS
    assert task.subtasks[0].data == ["word1", "word2"]


def test_save_result_task_not_found():
    with pytest.raises(repo_module.TaskNotFoundError):
        make_service().save_result_subtask(
            HashCrackTaskWebhookInput(request_id="123", answer=Answer(["word1", "word2"]))
        )


def test_save_result_update_error():
    expected = RuntimeError("update failed")
    repo = ScriptedRepo(failures={"update": expected})
    repo.inner.create(HashCrackTask(id="123", part_count=1))

    with pytest.raises(RuntimeError) as exc_info:
        make_service(repo=repo).save_result_subtask(
            HashCrackTaskWebhookInput(request_id="123", answer=Answer(["word1", "word2"]))
        )

    assert exc_info.value is expected


def test_finish_timeout_tasks_marks_error():
    task = HashCrackTask(id="123")
    noted = HashCrackTask(id="456", reason="x")
    repo = ScriptedRepo(finished=[task, noted])

    make_service(repo=repo).finish_timeout_tasks()

    assert task.status is TaskStatus.ERROR
    assert task.reason == "timeout"
    assert noted.reason == "x; timeout"
    assert repo.updates == 2


def test_finish_timeout_tasks_none():
    repo = ScriptedRepo(finished=[])
    make_service(repo=repo).finish_timeout_tasks()
    assert repo.updates == 0


def test_finish_timeout_tasks_get_error():
    expected = RuntimeError("get all finished failed")
    service = make_service(repo=ScriptedRepo(failures={"get_all_finished": expected}))

    with pytest.raises(RuntimeError) as exc_info:
        service.finish_timeout_tasks()

    assert exc_info.value is expected


def test_finish_timeout_tasks_update_error():
    expected = RuntimeError("update failed")
    repo = ScriptedRepo(failures={"update": expected}, finished=[HashCrackTask(id="123")])

    with pytest.raises(RuntimeError) as exc_info:
        make_service(repo=repo).finish_timeout_tasks()

    assert exc_info.value.__cause__ is expected


def test_delete_expired_tasks():
    repo = InMemoryTaskRepository()
    now = datetime.now(timezone.utc)
    repo.create(HashCrackTask(id="old", created_at=now - timedelta(days=2)))
    repo.create(HashCrackTask(id="new", created_at=now))

    make_service(repo=repo).delete_expired_tasks()

    assert repo.get("new").id == "new"
    with pytest.raises(repo_module.TaskNotFoundError):
        repo.get("old")


def test_delete_expired_tasks_error():
    expected = RuntimeError("repo error")
    service = make_service(repo=ScriptedRepo(failures={"delete_all_expired": expected}))

    with pytest.raises(RuntimeError) as exc_info:
        service.delete_expired_tasks()

    assert exc_info.value is expected


def test_build_worker_request():
    task = HashCrackTask(id="123", hash=HASH, max_length=4, part_count=7)

    request = build_worker_request(task, 2, "abc")

    assert request.request_id == "123"
    assert request.hash == HASH
    assert request.max_length == 4
    assert request.part_number == 2
    assert request.part_count == 7
    assert request.alphabet.symbols == ["a", "b", "c"]
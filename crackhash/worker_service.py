"""Worker side of a hash crack task: brute force one part and report back."""

from __future__ import annotations

import json
import logging
from concurrent.futures import Executor, Future
from typing import Protocol, Sequence

import requests

from .httpclient import HttpClient
from .models import (
    Answer,
    ErrorOutput,
    HashCrackTaskWebhookInput,
    ValidationError,
    WorkerTaskInput,
)

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/internal/api/manager/hash/crack/webhook"


class _BruteForce(Protocol):
    def brute_force_md5(
        self, target_hash: str, alphabet: Sequence[str], max_length: int, part_number: int
    ) -> list[str]: ...


def build_success_webhook(
    request_id: str, part_number: int, answers: Sequence[str]
) -> HashCrackTaskWebhookInput:
    return HashCrackTaskWebhookInput(
        request_id=request_id, part_number=part_number, answer=Answer(words=list(answers))
    )


def build_error_webhook(request_id: str, part_number: int, error: str) -> HashCrackTaskWebhookInput:
    return HashCrackTaskWebhookInput(request_id=request_id, part_number=part_number, error=error)


def _error_message(response: requests.Response) -> str:
    try:
        return ErrorOutput.from_xml(response.content).message
    except ValidationError:
        pass
    try:
        return ErrorOutput.from_dict(response.json()).message
    except (ValidationError, ValueError, json.JSONDecodeError):
        return response.text


class WorkerTaskService:
    """Queues brute force jobs and sends their results to the manager."""

    def __init__(
        self,
        manager_address: str,
        client: HttpClient,
        executor: Executor,
        brute_force: _BruteForce,
    ) -> None:
        self._manager_address = manager_address
        self._client = client
        self._executor = executor
        self._brute_force = brute_force

    def execute_task(self, task: WorkerTaskInput) -> Future:
        """Queue the task and return the future of its webhook."""
        logger.info("start brute force md5: id=%s part=%d", task.request_id, task.part_number)
        return self._executor.submit(self.run_task, task)

    def run_task(self, task: WorkerTaskInput) -> HashCrackTaskWebhookInput:
        """Brute force the part now, post the result and return what was sent."""
        logger.info("brute force md5: id=%s part=%d", task.request_id, task.part_number)

        try:
            answers = self._brute_force.brute_force_md5(
                task.hash, task.alphabet.symbols, task.max_length, task.part_number
            )
        except Exception as exc:
            logger.exception("failed to brute force md5")
            webhook = build_error_webhook(
                task.request_id, task.part_number, f"failed to brute force md5: {exc}"
            )
        else:
            webhook = build_success_webhook(task.request_id, task.part_number, answers)

        logger.debug("send result webhook")
        url = f"{self._manager_address}{WEBHOOK_PATH}"
        try:
            response = self._client.post(
                url,
                data=webhook.to_xml().encode("utf-8"),
                headers={"Content-Type": "application/xml"},
            )
        except requests.RequestException:
            logger.exception("failed to send result webhook")
            return webhook

        if response.status_code >= 400:
            logger.error("failed to execute task: %s", _error_message(response))

        logger.info("end brute force md5: id=%s part=%d", task.request_id, task.part_number)
        return webhook
"""Request and response bodies exchanged by the manager and the workers."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


class ValidationError(ValueError):
    """Raised when a body cannot be decoded or breaks a field constraint."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValidationError("timestamp must be a string")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(r"\1", text)
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"invalid timestamp: {value!r}") from exc


def _parse_root(text: str | bytes) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise ValidationError(f"invalid xml: {exc}") from exc


def _child_text(root: ET.Element, tag: str) -> Optional[str]:
    element = root.find(tag)
    if element is None:
        return None
    return element.text or ""


def _xml_int(root: ET.Element, tag: str) -> int:
    text = _child_text(root, tag)
    if text is None or not text.strip():
        return 0
    try:
        return int(text.strip())
    except ValueError as exc:
        raise ValidationError(f"{tag} must be an integer") from exc


def _add(parent: ET.Element, tag: str, text: Any) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = str(text)
    return element


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError("body must be an object")
    return data


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class ErrorOutput:
    """Body of every error response."""

    message: str
    status: int
    path: str
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "message": self.message,
            "status": self.status,
            "path": self.path,
        }

    def to_xml(self) -> str:
        root = ET.Element("ErrorResponse")
        _add(root, "Timestamp", _format_time(self.timestamp))
        _add(root, "Message", self.message)
        _add(root, "Status", self.status)
        _add(root, "Path", self.path)
        return ET.tostring(root, encoding="unicode")

    @staticmethod
    def _checked(timestamp: datetime, message: Any, status: Any, path: Any) -> "ErrorOutput":
        if not isinstance(message, str) or not message:
            raise ValidationError("message is required")
        if not _is_int(status) or not 400 <= status <= 599:
            raise ValidationError("status must be between 400 and 599")
        if not isinstance(path, str) or not path:
            raise ValidationError("path is required")
        return ErrorOutput(message=message, status=status, path=path, timestamp=timestamp)

    @classmethod
    def from_dict(cls, data: Any) -> "ErrorOutput":
        body = _require_mapping(data)
        missing = [key for key in ("timestamp", "message", "status", "path") if key not in body]
        if missing:
            raise ValidationError(f"missing field: {missing[0]}")
        return cls._checked(
            _parse_time(body["timestamp"]), body["message"], body["status"], body["path"]
        )

    @classmethod
    def from_xml(cls, text: str | bytes) -> "ErrorOutput":
        root = _parse_root(text)
        timestamp = _child_text(root, "Timestamp")
        if timestamp is None:
            raise ValidationError("missing field: Timestamp")
        return cls._checked(
            _parse_time(timestamp),
            _child_text(root, "Message"),
            _xml_int(root, "Status"),
            _child_text(root, "Path"),
        )


@dataclass
class HashCrackTaskInput:
    """Client request to crack a hash."""

    hash: str
    max_length: int

    @classmethod
    def from_dict(cls, data: Any) -> "HashCrackTaskInput":
        body = _require_mapping(data)
        hash_value = body.get("hash")
        if not isinstance(hash_value, str) or not hash_value:
            raise ValidationError("hash is required")
        max_length = body.get("maxLength", 0)
        if not _is_int(max_length):
            raise ValidationError("maxLength must be an integer")
        if not 1 <= max_length <= 6:
            raise ValidationError("maxLength must be between 1 and 6")
        return cls(hash=hash_value, max_length=max_length)


@dataclass
class HashCrackTaskIDOutput:
    request_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"requestId": self.request_id}


@dataclass
class HashCrackTaskStatusOutput:
    status: str
    data: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"status": str(self.status), "data": list(self.data)}


@dataclass
class Answer:
    words: list[str] = field(default_factory=list)


@dataclass
class HashCrackTaskWebhookInput:
    """Result of one part, sent by a worker to the manager."""

    request_id: str
    part_number: int = 0
    answer: Optional[Answer] = None
    error: Optional[str] = None

    def to_xml(self) -> str:
        root = ET.Element("HashCrackTaskWebhookInput")
        _add(root, "RequestID", self.request_id)
        _add(root, "PartNumber", self.part_number)
        if self.answer is not None:
            answer = ET.SubElement(root, "Answer")
            for word in self.answer.words:
                _add(answer, "words", word)
        if self.error is not None:
            _add(root, "Error", self.error)
        return ET.tostring(root, encoding="unicode")

    @classmethod
    def from_xml(cls, text: str | bytes) -> "HashCrackTaskWebhookInput":
        root = _parse_root(text)
        request_id = _child_text(root, "RequestID")
        if not request_id:
            raise ValidationError("RequestID is required")

        answer = None
        answer_element = root.find("Answer")
        if answer_element is not None:
            answer = Answer(words=[word.text or "" for word in answer_element.findall("words")])

        return cls(
            request_id=request_id,
            part_number=_xml_int(root, "PartNumber"),
            answer=answer,
            error=_child_text(root, "Error"),
        )


@dataclass
class Alphabet:
    symbols: list[str] = field(default_factory=list)


@dataclass
class WorkerTaskInput:
    """One part of a task, sent by the manager to a worker."""

    request_id: str
    hash: str
    max_length: int
    alphabet: Alphabet
    part_number: int = 0
    part_count: int = 0

    def to_xml(self) -> str:
        root = ET.Element("HashCrackTaskInput")
        _add(root, "RequestID", self.request_id)
        _add(root, "PartNumber", self.part_number)
        _add(root, "PartCount", self.part_count)
        _add(root, "Hash", self.hash)
        _add(root, "MaxLength", self.max_length)
        alphabet = ET.SubElement(root, "Alphabet")
        for symbol in self.alphabet.symbols:
            _add(alphabet, "Symbols", symbol)
        return ET.tostring(root, encoding="unicode")

    @classmethod
    def from_xml(cls, text: str | bytes) -> "WorkerTaskInput":
        root = _parse_root(text)
        request_id = _child_text(root, "RequestID")
        if not request_id:
            raise ValidationError("RequestID is required")
        hash_value = _child_text(root, "Hash")
        if not hash_value:
            raise ValidationError("Hash is required")
        max_length = _xml_int(root, "MaxLength")
        if not 0 <= max_length <= 6:
            raise ValidationError("MaxLength must be between 0 and 6")

        symbols: list[str] = []
        alphabet_element = root.find("Alphabet")
        if alphabet_element is not None:
            symbols = [symbol.text or "" for symbol in alphabet_element.findall("Symbols")]

        return cls(
            request_id=request_id,
            hash=hash_value,
            max_length=max_length,
            alphabet=Alphabet(symbols=symbols),
            part_number=_xml_int(root, "PartNumber"),
            part_count=_xml_int(root, "PartCount"),
        )
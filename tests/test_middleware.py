import json
import uuid

import pytest
from flask import Flask

from crackhash.middleware import HttpError, error_message, install_middleware, render_error
from crackhash.models import ErrorOutput, ValidationError


def _make_app(patterns=()):
    app = Flask("middleware-test")

    @app.get("/ok")
    def ok():
        return "OK"

    @app.get("/health/live")
    def live():
        return "OK"

    @app.post("/validation")
    def validation():
        raise HttpError(400, ValidationError("hash is required"))

    @app.post("/syntax")
    def syntax():
        try:
            json.loads("{")
        except json.JSONDecodeError as exc:
            raise HttpError(400, exc) from exc
        return "unreachable"

    @app.post("/empty")
    def empty():
        raise HttpError(400, EOFError())

    @app.post("/internal")
    def internal():
        raise HttpError(500, RuntimeError("database exploded"))

    @app.post("/conflict")
    def conflict():
        raise HttpError(429, RuntimeError("too many tasks"))

    @app.get("/crash")
    def crash():
        raise RuntimeError("boom")

    install_middleware(app, patterns)
    return app


@pytest.fixture
def client():
    return _make_app(["/health.*"]).test_client()


def test_validation_error_message(client):
    response = client.post("/validation")
    body = response.get_json()
    assert response.status_code == 400
    assert body["message"] == "hash is required"
    assert body["status"] == 400
    assert body["path"] == "/validation"


def test_json_syntax_error_message(client):
    response = client.post("/syntax")
    assert response.get_json()["message"] == "invalid json"


def test_empty_body_message(client):
    assert client.post("/empty").get_json()["message"] == "empty body"


def test_internal_error_hides_message(client):
    response = client.post("/internal")
    assert response.status_code == 500
    assert response.get_json()["message"] == "internal server error"


def test_other_status_keeps_message(client):
    response = client.post("/conflict")
    assert response.status_code == 429
    assert response.get_json()["message"] == "too many tasks"


def test_error_body_round_trips(client):
    body = client.post("/validation").get_json()
    parsed = ErrorOutput.from_dict(body)
    assert parsed.to_dict() == body


def test_xml_request_gets_xml_error(client):
    response = client.post("/validation", data="<x/>", content_type="application/xml")
    assert response.content_type.startswith("application/xml")
    parsed = ErrorOutput.from_xml(response.data)
    assert parsed.message == "hash is required"
    assert parsed.status == 400
    assert parsed.path == "/validation"


def test_unhandled_exception_is_recovered(client):
    response = client.get("/crash")
    assert response.status_code == 500
    assert response.get_json()["message"] == "internal server error"


def test_unknown_route(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.get_json()["message"] == "route not found"


def test_method_not_allowed(client):
    response = client.post("/ok")
    assert response.status_code == 405
    assert response.get_json()["message"] == "method not allowed"


def test_request_id_generated(client):
    response = client.get("/ok")
    value = response.headers["X-Request-ID"]
    assert str(uuid.UUID(value)) == value


def test_request_id_not_echoed_when_given(client):
    response = client.get("/ok", headers={"X-Request-ID": "given"})
    assert response.status_code == 200
    assert "X-Request-ID" not in response.headers


def test_ignored_path_is_not_tagged(client):
    response = client.get("/health/live")
    assert response.data == b"OK"
    assert "X-Request-ID" not in response.headers


def test_invalid_ignore_pattern_is_skipped():
    client = _make_app(["("]).test_client()
    response = client.get("/ok")
    assert response.status_code == 200
    assert response.data == b"OK"


def test_error_message_plain_cases():
    assert error_message(RuntimeError("x"), 400) == "x"
    assert error_message(RuntimeError("x"), 500) == "internal server error"
    assert error_message("text", 404) == "text"


def test_error_message_follows_cause():
    try:
        try:
            json.loads("")
        except json.JSONDecodeError as exc:
            raise RuntimeError("wrapped") from exc
    except RuntimeError as wrapped:
        assert error_message(wrapped, 400) == "invalid json"


def test_render_error_json():
    response = render_error(400, "bad things", "/p", "application/json")
    body = json.loads(response.get_data(as_text=True))
    assert response.status_code == 400
    assert body["message"] == "bad things"
    assert body["path"] == "/p"


def test_render_error_xml():
    response = render_error(404, "missing", "/q", "application/xml")
    parsed = ErrorOutput.from_xml(response.get_data())
    assert parsed.message == "missing"
    assert parsed.status == 404


def test_http_error_keeps_status_and_error():
    cause = RuntimeError("inner")
    error = HttpError(418, cause)
    assert error.status == 418
    assert error.error is cause
    assert str(error) == "inner"
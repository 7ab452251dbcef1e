"""Tests for structured logging and request tracing."""

import json
import logging
import sys

from fastapi import FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from photopipe.core.logging import CloudLoggingFormatter, request_id_context
from photopipe.core.middleware import REQUEST_ID_HEADER, RequestContextMiddleware


def _record(msg: str = "stage_start", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("photopipe.test", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCloudLoggingFormatter:
    """Tests for the JSON formatter."""

    def test_single_line_json_with_extras(self):
        output = CloudLoggingFormatter().format(_record(stage="UPLOAD", duration_ms=12))

        assert "\n" not in output
        entry = json.loads(output)
        assert entry["severity"] == "INFO"
        assert entry["message"] == "stage_start"
        assert entry["stage"] == "UPLOAD"
        assert entry["duration_ms"] == 12

    def test_request_id_from_context(self):
        token = request_id_context.set("trace-123")
        try:
            entry = json.loads(CloudLoggingFormatter().format(_record()))
        finally:
            request_id_context.reset(token)

        assert entry["request_id"] == "trace-123"

    def test_no_request_id_outside_request(self):
        entry = json.loads(CloudLoggingFormatter().format(_record()))
        assert "request_id" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("bad header")
        except ValueError:
            record = _record("failed", logging.ERROR)
            record.exc_info = sys.exc_info()

        entry = json.loads(CloudLoggingFormatter().format(record))

        assert entry["severity"] == "ERROR"
        assert entry["exception_type"] == "ValueError"
        assert "bad header" in entry["exception"]


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/trace")
    async def trace(request: Request):
        return {"state": request.state.request_id, "context": request_id_context.get()}

    @app.get("/fail")
    async def fail():
        raise HTTPException(status_code=404, detail="missing")

    return app


class TestRequestContextMiddleware:
    """Tests for request id propagation and error logging."""

    def test_incoming_request_id_is_bound_and_echoed(self):
        client = TestClient(_app())

        response = client.get("/trace", headers={REQUEST_ID_HEADER: "abc-1"})

        assert response.headers[REQUEST_ID_HEADER] == "abc-1"
        assert response.json() == {"state": "abc-1", "context": "abc-1"}

    def test_request_id_generated(self):
        client = TestClient(_app())

        response = client.get("/trace")

        generated = response.headers[REQUEST_ID_HEADER]
        assert len(generated) == 32
        assert response.json()["state"] == generated

    def test_client_errors_logged_as_warning(self, caplog):
        client = TestClient(_app())

        with caplog.at_level(logging.WARNING, logger="photopipe.core.middleware"):
            client.get("/fail", headers={REQUEST_ID_HEADER: "abc-2"})

        warnings = [r for r in caplog.records if r.getMessage() == "Client error response"]
        assert len(warnings) == 1
        assert warnings[0].http_status == 404
        assert warnings[0].request_id == "abc-2"

    def test_long_request_id_is_cut(self):
        client = TestClient(_app())

        response = client.get("/trace", headers={REQUEST_ID_HEADER: "x" * 500})

        assert response.headers[REQUEST_ID_HEADER] == "x" * 100
        assert response.json()["context"] == "x" * 100

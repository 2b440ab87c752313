"""
Tests for structured logging and the request logging middleware.
"""
import asyncio
import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from albumhq.logging_config import StructuredFormatter, StructuredLogger, timed
from albumhq.middleware import RequestLoggingMiddleware


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def records():
    handler = ListHandler()
    root = logging.getLogger("albumhq")
    root.addHandler(handler)
    previous = root.level
    root.setLevel(logging.DEBUG)
    yield handler.records
    root.setLevel(previous)
    root.removeHandler(handler)


class TestStructuredLogger:
    def test_context_is_attached(self, records):
        StructuredLogger("albumhq.test").info("Album created", album_id="trip")
        assert records[-1].getMessage() == "Album created"
        assert records[-1].context == {"album_id": "trip"}

    def test_bind_adds_fixed_context(self, records):
        log = StructuredLogger("albumhq.test").bind(job_id=7)
        log.warning("Retrying", attempt=2)
        assert records[-1].context == {"job_id": 7, "attempt": 2}

    def test_error_details(self, records):
        try:
            raise ValueError("bad exif")
        except ValueError as e:
            StructuredLogger("albumhq.test").error("Extraction failed", error=e)

        context = records[-1].context
        assert context["error_type"] == "ValueError"
        assert context["error_message"] == "bad exif"
        assert "bad exif" in context["traceback"]

    def test_json_format(self, records):
        StructuredLogger("albumhq.test").info("hello", media_id="m1")
        line = json.loads(StructuredFormatter().format(records[-1]))
        assert line["message"] == "hello"
        assert line["logger"] == "albumhq.test"
        assert line["media_id"] == "m1"
        assert line["timestamp"].endswith("Z")


class TestTimed:
    def test_async_success(self, records):
        @timed(StructuredLogger("albumhq.test"))
        async def convert():
            return "ok"

        assert asyncio.run(convert()) == "ok"
        assert records[-1].context["function"] == "convert"
        assert records[-1].levelno == logging.DEBUG

    def test_sync_failure_is_reraised(self, records):
        @timed(StructuredLogger("albumhq.test"))
        def probe():
            raise RuntimeError("ffprobe missing")

        with pytest.raises(RuntimeError):
            probe()
        assert records[-1].levelno == logging.WARNING
        assert records[-1].context["error_message"] == "ffprobe missing"


class TestRequestLogging:
    @pytest.fixture
    def logged_client(self):
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/api/albums")
        def albums():
            return []

        @app.get("/api/health")
        def health():
            return {"ok": True}

        return TestClient(app)

    def test_request_id_is_returned(self, logged_client, records):
        response = logged_client.get("/api/albums", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert records[-1].getMessage() == "GET /api/albums -> 200"
        assert records[-1].context["request_id"] == "abc123"

    def test_health_polls_are_not_logged(self, logged_client, records):
        response = logged_client.get("/api/health")
        assert response.headers["X-Request-ID"]
        assert not [r for r in records if "/api/health" in r.getMessage()]

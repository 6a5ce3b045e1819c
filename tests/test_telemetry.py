"""
Tests for metrics sinks and the Loki log handler.
"""

import json
import logging
from unittest.mock import MagicMock

import pytest
import requests

from swarmcheck.telemetry import InMemoryMetrics, LokiHandler, NullMetrics


def _record(message="hello", level=logging.INFO):
    return logging.LogRecord("swarmcheck.test", level, __file__, 1, message, None, None)


# ===== METRICS TESTS =====

@pytest.mark.unit
class TestMetrics:
    """Test in-process metric collection and export."""

    def test_counter(self):
        metrics = InMemoryMetrics()
        metrics.inc("upload_attempts")
        metrics.inc("upload_attempts", 2)
        assert metrics.get_counter("upload_attempts") == 3
        assert metrics.get_counter("missing") == 0

    def test_labels_independent_of_order(self):
        metrics = InMemoryMetrics()
        metrics.inc("x", labels={"node": "bee-0", "chunk": "ab"})
        assert metrics.get_counter("x", {"chunk": "ab", "node": "bee-0"}) == 1
        assert metrics.get_counter("x", {"node": "bee-1", "chunk": "ab"}) == 0

    def test_gauge_and_observations(self):
        metrics = InMemoryMetrics()
        metrics.set("repaired_time_seconds", 1.5, labels={"node": "bee-0"})
        metrics.set("repaired_time_seconds", 2.5, labels={"node": "bee-0"})
        metrics.observe("repaired_time_seconds_histogram", 0.3)
        metrics.observe("repaired_time_seconds_histogram", 7.0)
        assert metrics.get_gauge("repaired_time_seconds", {"node": "bee-0"}) == 2.5
        assert metrics.get_gauge("repaired_time_seconds") is None
        assert metrics.get_observations("repaired_time_seconds_histogram") == [0.3, 7.0]

    def test_prefix(self):
        metrics = InMemoryMetrics(prefix="check_recovery")
        metrics.inc("repaired_count")
        assert "check_recovery_repaired_count 1" in metrics.export_prometheus()

    def test_export_prometheus(self):
        metrics = InMemoryMetrics(buckets=(1.0, 5.0))
        metrics.inc("download_attempts", labels={"node": "bee-1"})
        metrics.set("repaired_time_seconds", 3.0)
        metrics.observe("upload_duration_seconds", 2.0)

        lines = metrics.export_prometheus().splitlines()

        assert "# TYPE download_attempts counter" in lines
        assert 'download_attempts{node="bee-1"} 1' in lines
        assert "# TYPE repaired_time_seconds gauge" in lines
        assert "repaired_time_seconds 3.0" in lines
        assert "# TYPE upload_duration_seconds histogram" in lines
        assert 'upload_duration_seconds_bucket{le="1.0"} 0' in lines
        assert 'upload_duration_seconds_bucket{le="5.0"} 1' in lines
        assert 'upload_duration_seconds_bucket{le="+Inf"} 1' in lines
        assert "upload_duration_seconds_sum 2.0" in lines
        assert "upload_duration_seconds_count 1" in lines

    def test_empty_export(self):
        assert InMemoryMetrics().export_prometheus() == ""

    def test_null_metrics(self):
        metrics = NullMetrics()
        metrics.inc("a")
        metrics.set("b", 1)
        metrics.observe("c", 1)


# ===== LOKI HANDLER TESTS =====

@pytest.mark.unit
class TestLokiHandler:
    """Test log shipping to Loki."""

    @pytest.fixture
    def session(self):
        session = MagicMock(spec=requests.Session)
        session.post.return_value = MagicMock(status_code=204, text="")
        return session

    def test_payload(self, session):
        handler = LokiHandler("http://loki:3100/loki/api/v1/push", labels={"check": "recovery"}, session=session)

        payload = handler.build_payload(_record("chunk repaired", logging.WARNING))

        stream = payload["streams"][0]
        assert stream["stream"]["app"] == "swarmcheck"
        assert stream["stream"]["check"] == "recovery"
        assert stream["stream"]["level"] == "warning"
        assert "hostname" in stream["stream"]
        timestamp, line = stream["values"][0]
        assert timestamp.isdigit()
        assert line == "chunk repaired"

    def test_emit_posts(self, session):
        handler = LokiHandler("http://loki:3100/loki/api/v1/push", session=session, timeout=2)

        handler.emit(_record())

        args, kwargs = session.post.call_args
        assert args == ("http://loki:3100/loki/api/v1/push",)
        assert kwargs["timeout"] == 2
        assert json.loads(kwargs["data"])["streams"][0]["values"][0][1] == "hello"

    def test_emit_failure_is_reported(self, session):
        session.post.return_value = MagicMock(status_code=500, text="ingester down")
        handler = LokiHandler("http://loki:3100/loki/api/v1/push", session=session)
        handler.handleError = MagicMock()

        record = _record()
        handler.emit(record)

        handler.handleError.assert_called_once_with(record)

    def test_emit_connection_error(self, session):
        session.post.side_effect = requests.ConnectionError("refused")
        handler = LokiHandler("http://loki:3100/loki/api/v1/push", session=session)
        handler.handleError = MagicMock()

        handler.emit(_record())

        handler.handleError.assert_called_once()

    def test_attached_to_logger(self, session):
        handler = LokiHandler("http://loki:3100/loki/api/v1/push", session=session)
        log = logging.getLogger("swarmcheck.test.loki")
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        try:
            log.info("iteration done")
        finally:
            log.removeHandler(handler)
        assert session.post.call_count == 1

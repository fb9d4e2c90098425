import json
import logging
import re

from fastapi.testclient import TestClient

from budget_hierarchy.api.main import app
from budget_hierarchy.api.observability import JsonFormatter, trace_id_from_traceparent


def test_observability_headers_preserve_inbound_correlation_and_trace_id():
    with TestClient(app) as client:
        response = client.get(
            "/health",
            headers={
                "X-Correlation-Id": "corr-inbound-123",
                "X-Request-Id": "req-inbound-123",
                "traceparent": "00-1234567890abcdef1234567890abcdef-0000000000000001-01",
            },
        )

    assert response.status_code == 200
    assert response.headers["X-Correlation-Id"] == "corr-inbound-123"
    assert response.headers["X-Request-Id"] == "req-inbound-123"
    assert response.headers["X-Trace-Id"] == "1234567890abcdef1234567890abcdef"


def test_observability_headers_generate_ids_when_missing():
    with TestClient(app) as client:
        response = client.get("/health")

    assert re.fullmatch(r"corr_[0-9a-f]{12}", response.headers["X-Correlation-Id"])
    assert re.fullmatch(r"req_[0-9a-f]{12}", response.headers["X-Request-Id"])
    assert re.fullmatch(
        r"00-[0-9a-f]{32}-0000000000000001-01",
        response.headers["traceparent"],
    )


def test_metrics_endpoint_is_exposed():
    with TestClient(app) as client:
        client.get("/health")
        response = client.get("/metrics")
    assert response.status_code == 200


def test_malformed_traceparent_is_ignored():
    assert trace_id_from_traceparent("garbage") is None
    assert trace_id_from_traceparent("00-short-01-01") is None


def test_json_formatter_merges_extra_fields():
    record = logging.LogRecord(
        name="budget_hierarchy.core.allocation.writer",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Distribution tree written partially",
        args=(),
        exc_info=None,
    )
    record.extra_fields = {"plan_id": "plan_1", "failures": 2}

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "Distribution tree written partially"
    assert payload["plan_id"] == "plan_1"
    assert payload["failures"] == 2
    assert payload["service"] == "budget-hierarchy"
    assert "correlation_id" not in payload

"""Unit tests for the error envelope and structured logging helpers."""

import json
import logging

import pytest

from gateway.app.errors import (
    GatewayError,
    NotFoundError,
    PartialFailureError,
    StorageUnavailableError,
    UpstreamUnavailableError,
    ValidationError,
)
from gateway.app.utils.logging import DeletionLogger, StructuredFormatter


class TestErrorEnvelope:
    """GatewayError rendering."""

    def test_envelope_with_details(self) -> None:
        error = NotFoundError("Document not found", details={"document_id": "d1"})

        assert error.status_code == 404
        assert error.to_envelope() == {
            "error": {
                "code": "NOT_FOUND",
                "message": "Document not found",
                "details": {"document_id": "d1"},
            }
        }

    def test_envelope_without_details(self) -> None:
        assert ValidationError("bad").to_envelope() == {
            "error": {"code": "VALIDATION_ERROR", "message": "bad"}
        }

    @pytest.mark.parametrize(
        "error,code,status",
        [
            (UpstreamUnavailableError("x"), "UPSTREAM_UNAVAILABLE", 503),
            (StorageUnavailableError("x"), "STORAGE_UNAVAILABLE", 503),
            (PartialFailureError("x"), "PARTIAL_FAILURE", 500),
            (GatewayError("x"), "INTERNAL_ERROR", 500),
        ],
    )
    def test_codes(self, error: GatewayError, code: str, status: int) -> None:
        assert (error.code, error.status_code) == (code, status)

    def test_storage_is_an_upstream_failure(self) -> None:
        assert isinstance(StorageUnavailableError("x"), UpstreamUnavailableError)


class TestStructuredLogging:
    """StructuredFormatter and DeletionLogger."""

    def test_formatter_appends_json(self) -> None:
        record = logging.LogRecord("gw", logging.WARNING, __file__, 1, "leg failed", None, None)
        record.structured = {"document_id": "d1", "leg": "object_store"}

        line = StructuredFormatter("%(message)s").format(record)

        assert line.startswith("leg failed ")
        assert json.loads(line[len("leg failed "):]) == {"document_id": "d1", "leg": "object_store"}

    def test_formatter_without_structured(self) -> None:
        record = logging.LogRecord("gw", logging.INFO, __file__, 1, "plain", None, None)

        assert StructuredFormatter("%(message)s").format(record) == "plain"

    def test_deletion_logger_levels(self, caplog: pytest.LogCaptureFixture) -> None:
        deletion_log = DeletionLogger(logging.getLogger("gateway.test.deletion"))

        with caplog.at_level(logging.INFO, logger="gateway.test.deletion"):
            deletion_log.log_leg("d1", "vector_index", "success")
            deletion_log.log_leg("d1", "object_store", "error", s3_key="documents/d1/a", error_reason="denied")

        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING]
        assert caplog.records[1].structured == {
            "document_id": "d1",
            "leg": "object_store",
            "outcome": "error",
            "s3_key": "documents/d1/a",
            "error_reason": "denied",
        }

"""Unit tests for structured logging."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json
import logging
from logger import JSONFormatter, setup_logging


def make_record(**extra):
    record = logging.LogRecord(
        name="services.criteria_evaluator",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Criterion '%s' failed",
        args=("technical",),
        exc_info=None
    )
    for name, value in extra.items():
        setattr(record, name, value)
    return record


class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "services.criteria_evaluator"
        assert data["message"] == "Criterion 'technical' failed"
        assert data["timestamp"].endswith("Z")
        assert "job_id" not in data

    def test_job_context_included(self):
        record = make_record(job_id="job-1", key="technical", error_code="API_ERROR",
                             error_details={"attempts": 4})

        data = json.loads(JSONFormatter().format(record))

        assert data["job_id"] == "job-1"
        assert data["key"] == "technical"
        assert data["error_code"] == "API_ERROR"
        assert data["error_details"] == {"attempts": 4}

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_installs_json_handler(self):
        root_logger = logging.getLogger()
        handlers_before = list(root_logger.handlers)
        level_before = root_logger.level

        try:
            setup_logging("DEBUG")

            added = [h for h in root_logger.handlers if h not in handlers_before]
            assert len(added) == 1
            assert isinstance(added[0].formatter, JSONFormatter)
            assert root_logger.level == logging.DEBUG
        finally:
            for handler in root_logger.handlers[:]:
                if handler not in handlers_before:
                    root_logger.removeHandler(handler)
            root_logger.setLevel(level_before)

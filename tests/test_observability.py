# tests/test_observability.py
"""Tests for logging setup, metrics and tracing."""
import json
import uuid
import logging
from logging.handlers import RotatingFileHandler

import pytest

from lecture_store.exceptions import ErrorCode, PartialWriteError, StorageError

from lecture_store.observability import (
    LOG_FILE_NAME,
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    get_logger,
    is_logging_configured,
    metrics,
    timed_operation,
    traced,
)


@pytest.fixture
def package_logger():
    """Restore the package logger's handlers and level after the test."""
    log = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = list(log.handlers), log.level
    yield log
    for handler in log.handlers:
        if handler not in handlers:
            handler.close()
    log.handlers = handlers
    log.setLevel(level)


class TestConfigureLogging:
    """configure_logging() handler setup."""

    def test_console_only(self, package_logger):
        assert configure_logging(level=logging.WARNING) is None
        assert package_logger.level == logging.WARNING
        assert not any(isinstance(h, RotatingFileHandler) for h in package_logger.handlers)
        assert is_logging_configured()

    def test_file_handler(self, package_logger, tmp_path):
        log_dir = tmp_path / "logs"
        assert configure_logging(log_dir=log_dir, console=False) == log_dir
        logging.getLogger(f"{ROOT_LOGGER_NAME}.test").info("hello from the test")
        for handler in package_logger.handlers:
            handler.flush()
        text = (log_dir / LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "hello from the test" in text
        assert "[INFO]" in text

    def test_no_duplicate_handlers(self, package_logger, tmp_path):
        configure_logging(log_dir=tmp_path)
        count = len(package_logger.handlers)
        configure_logging(log_dir=tmp_path)
        assert len(package_logger.handlers) == count


class TestMetricsCollector:
    """MetricsCollector bookkeeping."""

    def test_record_and_report(self):
        collector = MetricsCollector()
        collector.record_operation("new_entry", 10.0)
        collector.record_operation("new_entry", 30.0, StorageError("disk full"))

        data = collector.get_metrics()["new_entry"]
        assert data["calls"] == 2
        assert data["failures"] == 1
        assert data["partial_writes"] == 0
        assert data["avg_ms"] == 20.0
        assert data["max_ms"] == 30.0
        assert data["last_error"].startswith("StorageError: ")
        assert "disk full" in data["last_error"]
        assert data["last_error_at"] is not None

    def test_partial_writes_counted_separately(self):
        collector = MetricsCollector()
        error = PartialWriteError("half done", subject_id=uuid.uuid4())
        collector.record_operation("delete_entry", 1.0, error)
        data = collector.get_metrics()["delete_entry"]
        assert data["failures"] == 1
        assert data["partial_writes"] == 1

    def test_summary(self):
        collector = MetricsCollector()
        assert collector.get_summary()["failure_rate"] == 0.0
        collector.record_operation("b", 1.0)
        collector.record_operation("a", 1.0, KeyError("x"))
        summary = collector.get_summary()
        assert summary["calls"] == 2
        assert summary["failures"] == 1
        assert summary["failure_rate"] == 0.5
        assert summary["operations"] == ["a", "b"]

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("a", 1.0)
        collector.reset()
        assert collector.get_metrics() == {}
        assert collector.get_summary()["calls"] == 0

    def test_save_to_file(self, tmp_path):
        path = tmp_path / "metrics" / "metrics.json"
        collector = MetricsCollector()
        collector.record_operation("stats", 2.0)
        assert collector.save_metrics(path) == path
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["operations"]["stats"]["calls"] == 1
        assert data["summary"]["calls"] == 1
        assert sorted(p.name for p in path.parent.iterdir()) == ["metrics.json"]

    def test_save_failure(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        with pytest.raises(StorageError) as exc_info:
            MetricsCollector().save_metrics(blocker / "metrics.json")
        assert exc_info.value.code == ErrorCode.STORAGE_WRITE_FAILED


class TestTracing:
    """timed_operation() and @traced."""

    def test_timed_operation_success(self, fresh_metrics):
        with timed_operation("unit_op", subject_id="abc") as op:
            op["result_count"] = 3
        assert fresh_metrics.get_metrics()["unit_op"]["calls"] == 1

    def test_timed_operation_error(self, fresh_metrics):
        with pytest.raises(KeyError):
            with timed_operation("unit_fail"):
                raise KeyError("missing")
        data = fresh_metrics.get_metrics()["unit_fail"]
        assert data["failures"] == 1
        assert "missing" in data["last_error"]

    def test_traced_logs_positional_context(self, fresh_metrics, caplog):
        class Thing:
            @traced()
            def touch(self, subject_id, title):
                return [subject_id, title]

        caplog.set_level(logging.DEBUG, logger=f"{ROOT_LOGGER_NAME}.observability")
        assert Thing().touch("s-1", title="Notes") == ["s-1", "Notes"]

        messages = " ".join(r.getMessage() for r in caplog.records)
        assert " begin subject_id=s-1 title=Notes" in messages
        assert " ok in " in messages
        assert "subject_id=s-1" in messages
        assert "title=Notes" in messages
        assert "result_count=2" in messages
        assert fresh_metrics.get_metrics()["touch"]["calls"] == 1

    def test_traced_custom_name(self, fresh_metrics):
        @traced("renamed_op")
        def work():
            return None

        work()
        assert "renamed_op" in fresh_metrics.get_metrics()

    def test_storage_operations_are_traced(self, fresh_metrics, storage):
        subject_id = storage.new_subject("A", "")
        entry_id = storage.new_entry(subject_id, "1")
        storage.update_entry_body(subject_id, entry_id, "x")
        data = fresh_metrics.get_metrics()
        for op in ("new_subject", "new_entry", "update_entry_body"):
            assert data[op]["calls"] == 1
            assert data[op]["failures"] == 0

    def test_partial_write_is_recorded(self, fresh_metrics, storage, subject_id):
        (storage.entries_dir / str(subject_id)).write_text("in the way")
        with pytest.raises(PartialWriteError):
            storage.new_entry(subject_id, "Half")
        data = fresh_metrics.get_metrics()["new_entry"]
        assert data["failures"] == 1
        assert data["partial_writes"] == 1
        assert fresh_metrics is metrics


class TestStructuredLogger:
    """StructuredLogger message format."""

    def test_format(self, caplog):
        log = get_logger("maintenance")
        caplog.set_level(logging.INFO, logger=f"{ROOT_LOGGER_NAME}.maintenance")
        log.info("Recreated empty body", entry_id="e1", subject_id="s1")
        record = caplog.records[-1]
        assert record.name == f"{ROOT_LOGGER_NAME}.maintenance"
        assert record.getMessage() == (
            "[maintenance] Recreated empty body | entry_id=e1 subject_id=s1"
        )

    def test_without_context(self, caplog):
        caplog.set_level(logging.INFO, logger=f"{ROOT_LOGGER_NAME}.maintenance")
        get_logger("maintenance").warning("plain")
        assert caplog.records[-1].getMessage() == "[maintenance] plain"

    def test_exc_info_is_passed_through(self, caplog):
        caplog.set_level(logging.ERROR, logger=f"{ROOT_LOGGER_NAME}.maintenance")
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("maintenance").error("failed", exc_info=True, path="x")
        record = caplog.records[-1]
        assert record.getMessage() == "[maintenance] failed | path=x"
        assert record.exc_info is not None

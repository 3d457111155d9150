"""Logging setup, per-operation metrics and tracing for the lecture store.

Everything logs under the ``lecture_store`` logger. configure_logging() is
meant to be called once by an entry point; library code only ever calls
logging.getLogger(__name__) or get_logger().
"""
import functools
import inspect
import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, TypeVar, Union

from lecture_store.exceptions import ErrorCode, PartialWriteError, StorageError

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "lecture_store"
LOG_FILE_NAME = "lecture_store.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar("F", bound=Callable[..., Any])

_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Optional[Path]:
    """Attach handlers to the ``lecture_store`` logger.

    Args:
        log_dir: Directory for lecture_store.log. None means no file logging.
        level: Level for the package logger and its handlers
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files to keep
        console: Also log to stderr

    Returns:
        The log directory, or None when file logging is off

    Calling this again adjusts the level but never adds a second handler of
    the same kind.
    """
    global _logging_configured

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    def _attach(handler: logging.Handler) -> None:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    log_path = Path(log_dir) if log_dir is not None else None
    if log_path is not None:
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = (log_path / LOG_FILE_NAME).resolve()
        if not any(
            isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
            for h in package_logger.handlers
        ):
            _attach(
                RotatingFileHandler(
                    log_file,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
            )

    if console and not any(
        type(h) is logging.StreamHandler for h in package_logger.handlers
    ):
        _attach(logging.StreamHandler())

    _logging_configured = True
    logger.debug(
        f"Logging configured: level={logging.getLevelName(level)}, "
        f"file={'off' if log_path is None else log_path / LOG_FILE_NAME}"
    )
    return log_path


def is_logging_configured() -> bool:
    return _logging_configured


# ── Metrics ───────────────────────────────────────────────────


@dataclass
class OperationStats:
    """Counters for one facade operation."""
    calls: int = 0
    failures: int = 0
    # Failures where metadata was persisted but body files were not
    partial_writes: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "partial_writes": self.partial_writes,
            "avg_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "max_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_at": (
                self.last_error_at.isoformat() if self.last_error_at else None
            ),
        }


class MetricsCollector:
    """Thread-safe call counts and timings keyed by operation name."""

    def __init__(self) -> None:
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()
        self._since = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        error: Optional[BaseException] = None,
    ) -> None:
        """Count one call of operation; error is the exception it raised, if any."""
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.max_ms = max(stats.max_ms, duration_ms)
            if error is not None:
                stats.failures += 1
                if isinstance(error, PartialWriteError):
                    stats.partial_writes += 1
                stats.last_error = f"{type(error).__name__}: {error}"[:200]
                stats.last_error_at = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation counters, as plain dicts."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations since creation or the last reset()."""
        with self._lock:
            calls = sum(s.calls for s in self._stats.values())
            failures = sum(s.failures for s in self._stats.values())
            return {
                "since": self._since.isoformat(),
                "operations": sorted(self._stats),
                "calls": calls,
                "failures": failures,
                "partial_writes": sum(s.partial_writes for s in self._stats.values()),
                "failure_rate": round(failures / calls, 4) if calls else 0.0,
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._since = datetime.now(timezone.utc)

    def save_metrics(self, path: Union[str, Path]) -> Path:
        """Write summary and per-operation counters to a JSON file.

        The file is replaced atomically.

        Returns:
            The path written

        Raises:
            StorageError: If the file cannot be written
        """
        path = Path(path)
        document = {"summary": self.get_summary(), "operations": self.get_metrics()}
        temp_file = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(temp_file, path)
        except OSError as e:
            raise StorageError(
                "Failed to save metrics",
                operation="save_metrics",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Saved metrics for {len(document['operations'])} operations to {path}")
        return path


metrics = MetricsCollector()


# ── Tracing ───────────────────────────────────────────────────


def _context_string(context: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items())


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Time a block, record it in ``metrics`` and log it at DEBUG.

    The yielded dict is for result details (e.g. ``op["result_count"]``);
    they are appended to the closing log line.
    """
    trace_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    logger.debug(f"{operation}[{trace_id}] begin {_context_string(context)}".rstrip())
    started = time.perf_counter()
    error: Optional[BaseException] = None
    try:
        yield details
    except Exception as e:
        error = e
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error)
        outcome = "ok" if error is None else f"failed ({type(error).__name__})"
        logger.debug(
            f"{operation}[{trace_id}] {outcome} in {elapsed_ms:.2f}ms "
            f"{_context_string(details)}".rstrip()
        )


_TRACED_ARGUMENTS: Tuple[str, ...] = ("subject_id", "entry_id", "name", "title")


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Wrap a function in timed_operation().

    Arguments named subject_id, entry_id, name or title are copied into the
    log context whether they were passed by position or keyword; strings are
    cut to 50 characters.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                bound = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                # Let the real call raise the argument error
                bound = {}
            context = {
                key: bound[key][:50] if isinstance(bound[key], str) else bound[key]
                for key in _TRACED_ARGUMENTS
                if bound.get(key) is not None
            }
            with timed_operation(name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, dict)):
                    op["result_count"] = len(result)
                elif isinstance(result, uuid.UUID):
                    op["result"] = result
                elif result is not None:
                    op["has_result"] = True
                return result

        return wrapper  # type: ignore
    return decorator


# ── Structured logging ────────────────────────────────────────


class StructuredLogger(logging.LoggerAdapter):
    """Logger for one component that takes context as keyword arguments.

    ``log.info("Removed orphan", path="x")`` logs
    ``[component] Removed orphan | path=x`` under ``lecture_store.<component>``.
    """

    _LOGGING_KWARGS = ("exc_info", "stack_info", "stacklevel", "extra")

    def __init__(self, component: str):
        super().__init__(logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}"), {})
        self.component = component

    def process(self, msg, kwargs):
        context = {k: v for k, v in kwargs.items() if k not in self._LOGGING_KWARGS}
        passthrough = {k: v for k, v in kwargs.items() if k in self._LOGGING_KWARGS}
        text = f"[{self.component}] {msg}"
        if context:
            text = f"{text} | {_context_string(context)}"
        return text, passthrough


def get_logger(component: str) -> StructuredLogger:
    """Structured logger for a component (e.g. 'maintenance')."""
    return StructuredLogger(component)

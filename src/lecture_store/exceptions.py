"""Exceptions raised by the lecture store.

Every error derives from LectureStoreError and carries an ErrorCode plus a
details dict, so callers can branch on the code and log to_dict(). Storage
errors only ever expose the last component of a path.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Subject errors (1xxx)
    SUBJECT_NOT_FOUND = 1001

    # Entry errors (2xxx)
    ENTRY_NOT_FOUND = 2001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_NOT_A_DIRECTORY = 4004
    INDEX_CORRUPTED = 4005
    STORAGE_PARTIAL_WRITE = 4006

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_ID = 7002


class LectureStoreError(Exception):
    """Base exception for all lecture store errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class SubjectNotFoundError(LectureStoreError):
    """Raised when a subject ID is not in the index."""

    def __init__(self, subject_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"Subject '{subject_id}' does not exist",
            code=ErrorCode.SUBJECT_NOT_FOUND,
            details={"subject_id": str(subject_id)}
        )
        self.subject_id = subject_id


class EntryNotFoundError(LectureStoreError):
    """Raised when an entry ID is not in its subject's namespace."""

    def __init__(
        self,
        subject_id: Any,
        entry_id: Any,
        message: Optional[str] = None
    ):
        super().__init__(
            message or f"Entry '{entry_id}' does not exist in subject '{subject_id}'",
            code=ErrorCode.ENTRY_NOT_FOUND,
            details={"subject_id": str(subject_id), "entry_id": str(entry_id)}
        )
        self.subject_id = subject_id
        self.entry_id = entry_id


class StorageError(LectureStoreError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Only the last component ends up in messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class RootNotDirectoryError(StorageError):
    """Raised when the storage root (or one of its layout dirs) is not a directory."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(
            message or "Storage path is not a directory",
            operation="init",
            path=path,
            code=ErrorCode.STORAGE_NOT_A_DIRECTORY,
        )


class IndexCorruptedError(StorageError):
    """Raised when a metadata JSON file cannot be parsed.

    The file is left untouched so it can be inspected or restored by hand.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="load",
            path=path,
            code=ErrorCode.INDEX_CORRUPTED,
            original_error=original_error,
        )


class PartialWriteError(StorageError):
    """Raised when metadata was persisted but the body-file step failed.

    Metadata and the body tree may now disagree. The index reflects the
    completed metadata change; run the maintenance repair to reconcile.

    Attributes:
        subject_id: Subject the operation ran against
        entry_id: Entry the operation ran against (for new_entry this is the
            freshly generated ID, which is already in the index)
    """

    def __init__(
        self,
        message: str,
        subject_id: Any,
        entry_id: Optional[Any] = None,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation=operation,
            path=path,
            code=ErrorCode.STORAGE_PARTIAL_WRITE,
            original_error=original_error,
        )
        self.subject_id = subject_id
        self.entry_id = entry_id
        self.details["subject_id"] = str(subject_id)
        if entry_id is not None:
            self.details["entry_id"] = str(entry_id)


class ConfigurationError(LectureStoreError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(LectureStoreError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value

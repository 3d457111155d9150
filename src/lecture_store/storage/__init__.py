"""Storage layer for the lecture store."""

from lecture_store.storage.lecture_storage import BODY_FILE, LectureStorage
from lecture_store.storage.locking import LockingError, SharedLock
from lecture_store.storage.metadata_index import MetadataIndex

__all__ = [
    "BODY_FILE",
    "LectureStorage",
    "LockingError",
    "MetadataIndex",
    "SharedLock",
]

"""Storage facade for subjects, entries and entry bodies."""
import logging
import shutil
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from lecture_store.config import config
from lecture_store.exceptions import (
    EntryNotFoundError,
    ErrorCode,
    PartialWriteError,
    RootNotDirectoryError,
    StorageError,
    SubjectNotFoundError,
)
from lecture_store.models.schema import (
    Entry,
    EntryMap,
    IdLike,
    Subject,
    SubjectMap,
    coerce_id,
    utc_now,
)
from lecture_store.observability import traced
from lecture_store.storage.locking import SharedLock
from lecture_store.storage.metadata_index import MetadataIndex

logger = logging.getLogger(__name__)

ENTRIES_DIR = "entries"
METADATA_DIR = "metadata"
BODY_FILE = "CONTENT.md"


class LectureStorage:
    """Subject and entry storage rooted at a single directory.

    Layout::

        <root>/
          metadata/subjects.json
          metadata/entries.json
          entries/<subject_id>/<entry_id>/CONTENT.md

    The in-memory index is the source of truth while a call runs; both JSON
    files are rewritten before any mutating call returns. A mutating call
    persists metadata first and touches the entry's body files second, so a
    crash in between leaves metadata that points at a missing or stale body
    (read back as an empty body) and never a body without metadata. A
    failure in that second step raises PartialWriteError; the metadata
    change stands.

    Reads (list_*, *_exists, get_*) share the lock; mutations hold it
    exclusively for the lookup, the index update and the flush. Body-file
    I/O happens after the lock is released.
    """

    def __init__(
        self,
        root_path: Optional[Union[str, Path]] = None,
        json_indent: Optional[int] = None,
    ):
        """Open (or create) the storage at root_path.

        Args:
            root_path: Storage root. If None, uses config.get_root_dir().
                Relative paths are resolved against config.base_dir.
            json_indent: Indentation for the metadata files. If None, uses
                config.json_indent.

        Raises:
            RootNotDirectoryError: If the root or one of its layout
                directories exists but is not a directory
            IndexCorruptedError: If a metadata file does not parse
            StorageError: If the layout cannot be created or the metadata
                files cannot be read or written
        """
        self.root = (
            config.get_absolute_path(Path(root_path))
            if root_path is not None
            else config.get_root_dir()
        )
        self._lock = SharedLock()

        self._prepare_layout()

        self._index = MetadataIndex(
            self.metadata_dir,
            json_indent=config.json_indent if json_indent is None else json_indent,
        )
        with self._lock.write_lock():
            self._index.load()
            # Rewrite right away: normalizes formatting and proves write access
            self._index.flush()

        logger.info(
            f"LectureStorage initialized: root={self.root}, "
            f"subjects={len(self._index.subjects)}, entries={self._index.entry_count()}"
        )

    @property
    def entries_dir(self) -> Path:
        return self.root / ENTRIES_DIR

    @property
    def metadata_dir(self) -> Path:
        return self.root / METADATA_DIR

    def _prepare_layout(self) -> None:
        for path in (self.root, self.entries_dir, self.metadata_dir):
            if path.exists() and not path.is_dir():
                raise RootNotDirectoryError(str(path))
            try:
                path.mkdir(parents=True, exist_ok=True)
            except FileExistsError as e:
                raise RootNotDirectoryError(str(path)) from e
            except OSError as e:
                raise StorageError(
                    "Failed to create storage directory",
                    operation="init",
                    path=str(path),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

    # ── Paths ─────────────────────────────────────────────────

    def _subject_dir(self, subject_id: uuid.UUID) -> Path:
        return self.entries_dir / str(subject_id)

    def _entry_dir(self, subject_id: uuid.UUID, entry_id: uuid.UUID) -> Path:
        return self._subject_dir(subject_id) / str(entry_id)

    def entry_body_path(self, subject_id: IdLike, entry_id: IdLike) -> Path:
        """Path of an entry's CONTENT.md. Does not check that the entry exists."""
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        return self._entry_dir(sid, eid) / BODY_FILE

    # ── Lookups (caller holds the lock) ───────────────────────

    def _require_subject(self, subject_id: uuid.UUID) -> Subject:
        subject = self._index.subjects.get(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return subject

    def _require_entry(self, subject_id: uuid.UUID, entry_id: uuid.UUID) -> Entry:
        self._require_subject(subject_id)
        entry = self._index.entries.get(subject_id, {}).get(entry_id)
        if entry is None:
            raise EntryNotFoundError(subject_id, entry_id)
        return entry

    # ── Subjects ──────────────────────────────────────────────

    @traced()
    def new_subject(self, name: str, description: str) -> uuid.UUID:
        """Create a subject with an empty entry map.

        Returns:
            The new subject's ID
        """
        subject = Subject(name=name, description=description)
        with self._lock.write_lock(), self._index.transaction() as index:
            index.subjects[subject.id] = subject
            index.entries[subject.id] = {}
        logger.info(f"Created subject {subject.id} ({name!r})")
        return subject.id

    def list_subjects(self) -> List[Subject]:
        """All subjects, in no particular order."""
        with self._lock.read_lock():
            return list(self._index.subjects.values())

    def subject_exists(self, subject_id: IdLike) -> bool:
        sid = coerce_id(subject_id, "subject_id")
        with self._lock.read_lock():
            return sid in self._index.subjects

    def get_subject(self, subject_id: IdLike) -> Subject:
        """Look up a single subject.

        Raises:
            SubjectNotFoundError: If the subject does not exist
        """
        sid = coerce_id(subject_id, "subject_id")
        with self._lock.read_lock():
            return self._require_subject(sid)

    @traced()
    def remove_subject(self, subject_id: IdLike) -> None:
        """Remove a subject, all of its entries and their body files.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            StorageError: If the metadata could not be persisted
            PartialWriteError: If the metadata was persisted but the
                subject's body tree could not be removed
        """
        sid = coerce_id(subject_id, "subject_id")
        with self._lock.write_lock(), self._index.transaction() as index:
            self._require_subject(sid)
            del index.subjects[sid]
            removed = index.entries.pop(sid, {})
        logger.info(f"Removed subject {sid} with {len(removed)} entries")
        self._remove_tree(self._subject_dir(sid), sid, None, "remove_subject")

    @traced()
    def update_subject(self, subject_id: IdLike, data: Subject) -> None:
        """Replace a subject's name and description.

        The stored ID is kept even if data carries a different one.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            StorageError: If the metadata could not be persisted
        """
        sid = coerce_id(subject_id, "subject_id")
        with self._lock.write_lock(), self._index.transaction() as index:
            self._require_subject(sid)
            index.subjects[sid] = Subject(
                id=sid, name=data.name, description=data.description
            )
        logger.debug(f"Updated subject {sid}")

    # ── Entries ───────────────────────────────────────────────

    @traced()
    def new_entry(self, subject_id: IdLike, title: str) -> uuid.UUID:
        """Create an entry and its empty body file.

        Returns:
            The new entry's ID

        Raises:
            SubjectNotFoundError: If the subject does not exist (nothing is
                created)
            StorageError: If the metadata could not be persisted
            PartialWriteError: If the metadata was persisted but the body
                file could not be created; its entry_id attribute holds
                the new ID
        """
        sid = coerce_id(subject_id, "subject_id")
        now = utc_now()
        entry = Entry(title=title, created_at=now, updated_at=now)
        with self._lock.write_lock(), self._index.transaction() as index:
            self._require_subject(sid)
            index.entries[sid][entry.id] = entry

        body_path = self._entry_dir(sid, entry.id) / BODY_FILE
        try:
            body_path.parent.mkdir(parents=True, exist_ok=True)
            body_path.touch(exist_ok=True)
        except OSError as e:
            raise PartialWriteError(
                f"Entry {entry.id} was recorded but its body file could not be created",
                subject_id=sid,
                entry_id=entry.id,
                operation="new_entry",
                path=str(body_path),
                original_error=e,
            ) from e
        logger.info(f"Created entry {entry.id} in subject {sid}")
        return entry.id

    def list_entries(self, subject_id: IdLike) -> List[Entry]:
        """All entries of a subject; empty if the subject does not exist."""
        sid = coerce_id(subject_id, "subject_id")
        with self._lock.read_lock():
            if sid not in self._index.subjects:
                return []
            return list(self._index.entries.get(sid, {}).values())

    def entry_exists(self, subject_id: IdLike, entry_id: IdLike) -> bool:
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.read_lock():
            if sid not in self._index.subjects:
                return False
            return eid in self._index.entries.get(sid, {})

    def get_entry(self, subject_id: IdLike, entry_id: IdLike) -> Entry:
        """Look up a single entry's metadata.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            EntryNotFoundError: If the entry does not exist in the subject
        """
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.read_lock():
            return self._require_entry(sid, eid)

    def read_entry_body(self, subject_id: IdLike, entry_id: IdLike) -> str:
        """Read an entry's body text.

        A missing body file reads as an empty string: metadata decides
        whether the entry exists.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            EntryNotFoundError: If the entry does not exist in the subject
            StorageError: If the body file exists but cannot be read
        """
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.read_lock():
            self._require_entry(sid, eid)

        body_path = self._entry_dir(sid, eid) / BODY_FILE
        try:
            with open(body_path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            logger.debug(f"Body file missing for entry {eid}, treating as empty")
            return ""
        except OSError as e:
            raise StorageError(
                f"Failed to read body of entry {eid}",
                operation="read_entry_body",
                path=str(body_path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    @traced()
    def update_entry_body(self, subject_id: IdLike, entry_id: IdLike, text: str) -> None:
        """Replace an entry's body text and refresh its updated_at.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            EntryNotFoundError: If the entry does not exist in the subject
            StorageError: If the metadata could not be persisted
            PartialWriteError: If the metadata was persisted but the body
                file could not be written
        """
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.write_lock(), self._index.transaction() as index:
            entry = self._require_entry(sid, eid)
            index.entries[sid][eid] = entry.touched()

        body_path = self._entry_dir(sid, eid) / BODY_FILE
        try:
            body_path.parent.mkdir(parents=True, exist_ok=True)
            with open(body_path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            raise PartialWriteError(
                f"Metadata of entry {eid} was updated but its body could not be written",
                subject_id=sid,
                entry_id=eid,
                operation="update_entry_body",
                path=str(body_path),
                original_error=e,
            ) from e
        logger.debug(f"Wrote {len(text)} characters to entry {eid}")

    @traced()
    def update_entry_metadata(self, subject_id: IdLike, entry_id: IdLike, data: Entry) -> None:
        """Replace an entry's title and refresh its updated_at.

        Only data.title is used; the stored id and created_at are kept.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            EntryNotFoundError: If the entry does not exist in the subject
            StorageError: If the metadata could not be persisted
        """
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.write_lock(), self._index.transaction() as index:
            entry = self._require_entry(sid, eid)
            index.entries[sid][eid] = entry.retitled(data.title)
        logger.debug(f"Updated metadata of entry {eid}")

    @traced()
    def delete_entry(self, subject_id: IdLike, entry_id: IdLike) -> None:
        """Remove an entry and its body directory.

        Raises:
            SubjectNotFoundError: If the subject does not exist
            EntryNotFoundError: If the entry does not exist in the subject
            StorageError: If the metadata could not be persisted
            PartialWriteError: If the metadata was persisted but the body
                directory could not be removed
        """
        sid = coerce_id(subject_id, "subject_id")
        eid = coerce_id(entry_id, "entry_id")
        with self._lock.write_lock(), self._index.transaction() as index:
            self._require_entry(sid, eid)
            del index.entries[sid][eid]
        logger.info(f"Deleted entry {eid} from subject {sid}")
        self._remove_tree(self._entry_dir(sid, eid), sid, eid, "delete_entry")

    # ── Misc ──────────────────────────────────────────────────

    def snapshot(self) -> Tuple[SubjectMap, EntryMap]:
        """Consistent copy of both metadata maps."""
        with self._lock.read_lock():
            return self._index.snapshot()

    @traced()
    def stats(self) -> Dict[str, int]:
        """Subject and entry counts."""
        with self._lock.read_lock():
            return {
                "subjects": len(self._index.subjects),
                "entries": self._index.entry_count(),
            }

    def _remove_tree(
        self,
        path: Path,
        subject_id: uuid.UUID,
        entry_id: Optional[uuid.UUID],
        operation: str,
    ) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            logger.debug(f"{operation}: {path.name} already absent on disk")
        except OSError as e:
            raise PartialWriteError(
                "Metadata was removed but the body directory could not be deleted",
                subject_id=subject_id,
                entry_id=entry_id,
                operation=operation,
                path=str(path),
                original_error=e,
            ) from e

"""In-memory metadata index mirrored to subjects.json and entries.json."""
import contextlib
import logging
import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from lecture_store.exceptions import ErrorCode, IndexCorruptedError, StorageError
from lecture_store.models.schema import Entry, EntryMap, SubjectMap

logger = logging.getLogger(__name__)

SUBJECTS_FILE = "subjects.json"
ENTRIES_FILE = "entries.json"

_SUBJECTS_ADAPTER = TypeAdapter(SubjectMap)
_ENTRIES_ADAPTER = TypeAdapter(EntryMap)


class MetadataIndex:
    """The two metadata maps and their JSON persistence.

    subjects maps subject ID to Subject; entries maps subject ID to a map of
    entry ID to Entry. Every known subject has an entry map, possibly empty.

    The index does no locking of its own. LectureStorage holds its write
    lock around load(), flush() and transaction().
    """

    def __init__(self, metadata_dir: Path, json_indent: int = 2):
        self.metadata_dir = metadata_dir
        self.json_indent = json_indent
        self.subjects: SubjectMap = {}
        self.entries: EntryMap = {}

    @property
    def subjects_path(self) -> Path:
        return self.metadata_dir / SUBJECTS_FILE

    @property
    def entries_path(self) -> Path:
        return self.metadata_dir / ENTRIES_FILE

    # ── Load ──────────────────────────────────────────────────

    def load(self) -> None:
        """Read both JSON files into memory.

        Each file is parsed on its own into its own map type. Both are checked
        before anything is written; only then is a missing file created as an
        empty JSON object.

        Raises:
            IndexCorruptedError: If a file exists but does not parse, or
                entries.json holds entries of subjects subjects.json lacks
            StorageError: If a file cannot be read or created
        """
        subjects = self._read_document(self.subjects_path, _SUBJECTS_ADAPTER)
        entries = self._read_document(self.entries_path, _ENTRIES_ADAPTER)
        self.subjects, self.entries = self._normalize(subjects or {}, entries or {})
        for path, document in ((self.subjects_path, subjects), (self.entries_path, entries)):
            if document is None:
                logger.info(f"No {path.name} found, initializing empty index file")
                self._write_atomic(path, b"{}")
        logger.info(
            f"Loaded metadata index: {len(self.subjects)} subjects, "
            f"{sum(len(m) for m in self.entries.values())} entries"
        )

    def _read_document(self, path: Path, adapter: TypeAdapter) -> Optional[dict]:
        """Parse one metadata file; None if it does not exist."""
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                f"Failed to read {path.name}",
                operation="load",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

        try:
            return adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise IndexCorruptedError(
                f"Metadata file {path.name} could not be parsed",
                path=str(path),
                original_error=e,
            ) from e

    def _normalize(
        self, subjects: SubjectMap, entries: EntryMap
    ) -> Tuple[SubjectMap, EntryMap]:
        """Make the loaded maps satisfy the index invariants.

        The map key wins over an embedded id and every subject gets an entry
        map. Entry maps whose subject is unknown are refused rather than
        dropped: the next flush would erase them for good.

        Raises:
            IndexCorruptedError: If entries.json refers to unknown subjects
        """
        unknown = sorted(str(sid) for sid in entries if sid not in subjects)
        if unknown:
            raise IndexCorruptedError(
                f"{ENTRIES_FILE} holds entries of subjects missing from "
                f"{SUBJECTS_FILE}: {', '.join(unknown)}",
                path=str(self.entries_path),
            )

        clean_subjects: SubjectMap = {}
        for subject_id, subject in subjects.items():
            if subject.id != subject_id:
                logger.warning(
                    f"Subject stored under {subject_id} carries id {subject.id}; using the key"
                )
                subject = subject.model_copy(update={"id": subject_id})
            clean_subjects[subject_id] = subject

        clean_entries: EntryMap = {}
        for subject_id, entry_map in entries.items():
            fixed: Dict[uuid.UUID, Entry] = {}
            for entry_id, entry in entry_map.items():
                if entry.id != entry_id:
                    logger.warning(
                        f"Entry stored under {entry_id} carries id {entry.id}; using the key"
                    )
                    entry = entry.model_copy(update={"id": entry_id})
                fixed[entry_id] = entry
            clean_entries[subject_id] = fixed

        for subject_id in clean_subjects:
            clean_entries.setdefault(subject_id, {})

        return clean_subjects, clean_entries

    # ── Flush ─────────────────────────────────────────────────

    def flush(self) -> None:
        """Write both maps to disk, replacing each file atomically.

        Raises:
            StorageError: If either file cannot be written
        """
        self._write_atomic(
            self.subjects_path,
            _SUBJECTS_ADAPTER.dump_json(self.subjects, indent=self.json_indent),
        )
        self._write_atomic(
            self.entries_path,
            _ENTRIES_ADAPTER.dump_json(self.entries, indent=self.json_indent),
        )

    def _write_atomic(self, path: Path, data: bytes) -> None:
        temp_file = path.with_name(f".{path.name}.tmp")
        try:
            with open(temp_file, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_file.unlink()
            raise StorageError(
                f"Failed to write {path.name}",
                operation="flush",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    # ── Transactions ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["MetadataIndex"]:
        """Mutate the index and persist it, or leave it as it was.

        The block mutates self.subjects / self.entries. On normal exit both
        maps are flushed. If the block or the flush raises, the in-memory
        maps are restored and the exception propagates. Models are immutable,
        so one level of copying per map is enough to restore them.
        """
        subjects_before = dict(self.subjects)
        entries_before = {sid: dict(m) for sid, m in self.entries.items()}
        flushing = False
        try:
            yield self
            flushing = True
            self.flush()
        except Exception:
            self.subjects = subjects_before
            self.entries = entries_before
            if flushing:
                # One of the two files may already hold the new state
                try:
                    self.flush()
                except StorageError as e:
                    logger.error(f"Could not restore metadata files after failed flush: {e}")
            raise

    # ── Introspection ─────────────────────────────────────────

    def snapshot(self) -> Tuple[SubjectMap, EntryMap]:
        """Copy of both maps, safe to hold on to while the index changes."""
        return dict(self.subjects), {sid: dict(m) for sid, m in self.entries.items()}

    def entry_count(self) -> int:
        return sum(len(m) for m in self.entries.values())

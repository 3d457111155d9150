"""Integrity check and repair between metadata and entry body files.

Metadata is persisted before body files are touched, so an interrupted or
failed call can leave the two disagreeing:

- an entry whose CONTENT.md is missing (reads back as an empty body);
- a subject or entry directory that no metadata refers to;
- files under entries/ that are not part of the layout at all.

check_integrity() reports these; repair() recreates missing bodies as empty
files and deletes orphaned directories. Neither ever edits metadata. Both are
meant to run while nothing else is writing to the storage.
"""
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from lecture_store.exceptions import ErrorCode, StorageError
from lecture_store.observability import get_logger, traced
from lecture_store.storage.lecture_storage import LectureStorage

log = get_logger("maintenance")


@dataclass
class IntegrityReport:
    """Differences found between metadata and the entries/ tree."""

    missing_bodies: List[Tuple[uuid.UUID, uuid.UUID]] = field(default_factory=list)
    orphaned_subject_dirs: List[Path] = field(default_factory=list)
    orphaned_entry_dirs: List[Path] = field(default_factory=list)
    stray_paths: List[Path] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.missing_bodies
            or self.orphaned_subject_dirs
            or self.orphaned_entry_dirs
            or self.stray_paths
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly summary."""
        return {
            "clean": self.is_clean,
            "missing_bodies": [
                {"subject_id": str(sid), "entry_id": str(eid)}
                for sid, eid in self.missing_bodies
            ],
            "orphaned_subject_dirs": [p.name for p in self.orphaned_subject_dirs],
            "orphaned_entry_dirs": [
                f"{p.parent.name}/{p.name}" for p in self.orphaned_entry_dirs
            ],
            "stray_paths": [str(p) for p in self.stray_paths],
        }


def _parse_dir_id(path: Path) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(path.name)
    except ValueError:
        return None


@traced()
def check_integrity(storage: LectureStorage) -> IntegrityReport:
    """Compare the metadata index against the entries/ directory tree.

    The tree is scanned before the metadata snapshot is taken. Entries gain
    their directory only after their metadata is persisted, so a directory
    seen during the scan is never mistaken for an orphan because of an entry
    created mid-check.

    Raises:
        StorageError: If the entries/ tree cannot be listed
    """
    report = IntegrityReport()
    entries_dir = storage.entries_dir

    try:
        layout: Dict[Path, List[Path]] = {}
        for subject_path in sorted(entries_dir.iterdir()):
            if not subject_path.is_dir() or _parse_dir_id(subject_path) is None:
                report.stray_paths.append(subject_path.relative_to(storage.root))
                continue
            layout[subject_path] = sorted(subject_path.iterdir())
    except OSError as e:
        raise StorageError(
            "Failed to scan entry directories",
            operation="check_integrity",
            path=str(entries_dir),
            code=ErrorCode.STORAGE_READ_FAILED,
            original_error=e,
        ) from e

    subjects, entries = storage.snapshot()

    for subject_path, children in layout.items():
        subject_id = _parse_dir_id(subject_path)
        if subject_id not in subjects:
            report.orphaned_subject_dirs.append(subject_path)
            continue
        known = entries.get(subject_id, {})
        for child in children:
            entry_id = _parse_dir_id(child)
            if not child.is_dir() or entry_id is None:
                report.stray_paths.append(child.relative_to(storage.root))
            elif entry_id not in known:
                report.orphaned_entry_dirs.append(child)

    for subject_id, entry_map in entries.items():
        for entry_id in entry_map:
            if not storage.entry_body_path(subject_id, entry_id).is_file():
                report.missing_bodies.append((subject_id, entry_id))

    if report.is_clean:
        log.info("Integrity check passed", subjects=len(subjects))
    else:
        log.warning(
            "Integrity check found problems",
            missing_bodies=len(report.missing_bodies),
            orphaned_subject_dirs=len(report.orphaned_subject_dirs),
            orphaned_entry_dirs=len(report.orphaned_entry_dirs),
            stray_paths=len(report.stray_paths),
        )
    return report


@traced()
def repair(
    storage: LectureStorage, report: Optional[IntegrityReport] = None
) -> IntegrityReport:
    """Bring the entries/ tree in line with the metadata.

    Missing bodies are recreated empty and orphaned directories are deleted.
    Stray paths are only reported; they may be something a user put there.

    Args:
        storage: The storage to repair
        report: A report from check_integrity(); a fresh check runs if None

    Returns:
        The report that was acted on

    Raises:
        StorageError: If a body cannot be created or a directory removed
    """
    if report is None:
        report = check_integrity(storage)

    for subject_id, entry_id in report.missing_bodies:
        body_path = storage.entry_body_path(subject_id, entry_id)
        try:
            body_path.parent.mkdir(parents=True, exist_ok=True)
            body_path.touch(exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to recreate body of entry {entry_id}",
                operation="repair",
                path=str(body_path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        log.info("Recreated empty body", subject_id=subject_id, entry_id=entry_id)

    for orphan in report.orphaned_entry_dirs + report.orphaned_subject_dirs:
        try:
            shutil.rmtree(orphan)
        except FileNotFoundError:
            continue
        except OSError as e:
            raise StorageError(
                "Failed to remove orphaned directory",
                operation="repair",
                path=str(orphan),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        log.info("Removed orphaned directory", path=orphan.name)

    for stray in report.stray_paths:
        log.warning("Leaving stray path in place", path=str(stray))

    return report

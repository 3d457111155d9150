"""Common test fixtures for the lecture store."""

import tempfile
from pathlib import Path

import pytest

from lecture_store.config import config
from lecture_store.observability import metrics
from lecture_store.storage.lecture_storage import LectureStorage


@pytest.fixture
def storage_root():
    """Create a temporary directory to use as the storage root."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "storage"


@pytest.fixture
def test_config(storage_root, monkeypatch):
    """Point the global config at the temporary root (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", storage_root.parent)
    monkeypatch.setattr(config, "root_dir", storage_root)
    monkeypatch.setattr(config, "json_indent", 2)
    yield config


@pytest.fixture
def storage(test_config):
    """Create a fresh storage under the temporary root."""
    yield LectureStorage(test_config.root_dir)


@pytest.fixture
def subject_id(storage):
    """A subject with no entries."""
    return storage.new_subject("Linear Algebra", "Period 1, Semester 1")


@pytest.fixture
def entry_id(storage, subject_id):
    """An entry with an empty body under subject_id."""
    return storage.new_entry(subject_id, "Vector spaces")


@pytest.fixture
def fresh_metrics():
    """Reset the global metrics collector around a test."""
    metrics.reset()
    yield metrics
    metrics.reset()

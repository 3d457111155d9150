# tests/test_models.py
"""Tests for the subject and entry models."""
import datetime
import uuid
from datetime import timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from lecture_store.exceptions import ErrorCode, ValidationError
from lecture_store.models.schema import (
    Entry,
    Subject,
    coerce_id,
    ensure_timezone_aware,
    generate_id,
    utc_now,
)


class TestSubjectModel:
    """Tests for the Subject model."""

    def test_subject_creation(self):
        subject = Subject(name="Calculus", description="Period 2")
        assert isinstance(subject.id, uuid.UUID)
        assert subject.id.version == 4
        assert subject.name == "Calculus"
        assert subject.description == "Period 2"

    def test_subjects_get_distinct_ids(self):
        assert Subject().id != Subject().id

    def test_subject_is_immutable(self):
        subject = Subject(name="Calculus")
        with pytest.raises(PydanticValidationError):
            subject.name = "Changed"

    def test_subject_from_json_payload(self):
        sid = uuid.uuid4()
        subject = Subject.model_validate(
            {"id": str(sid), "name": "Physics", "description": "", "legacy": 1}
        )
        assert subject.id == sid
        assert subject.name == "Physics"


class TestEntryModel:
    """Tests for the Entry model."""

    def test_entry_defaults(self):
        before = utc_now()
        entry = Entry(title="Notes")
        after = utc_now()
        assert isinstance(entry.id, uuid.UUID)
        assert entry.title == "Notes"
        assert before <= entry.created_at <= after
        assert before <= entry.updated_at <= after
        assert entry.created_at.tzinfo is not None

    def test_naive_timestamps_become_utc(self):
        naive = datetime.datetime(2024, 3, 1, 12, 0, 0)
        entry = Entry(title="Old", created_at=naive, updated_at=naive)
        assert entry.created_at.tzinfo == timezone.utc
        assert entry.created_at.hour == 12

    def test_other_zones_are_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        local = datetime.datetime(2024, 3, 1, 14, 0, 0, tzinfo=plus_two)
        entry = Entry(title="Abroad", created_at=local, updated_at=local)
        assert entry.created_at.utcoffset() == timedelta(0)
        assert entry.created_at.hour == 12
        assert entry.created_at == local

    def test_touched_refreshes_updated_at_only(self):
        created = utc_now() - timedelta(days=1)
        entry = Entry(title="Notes", created_at=created, updated_at=created)
        touched = entry.touched()
        assert touched.updated_at > entry.updated_at
        assert touched.created_at == entry.created_at
        assert touched.id == entry.id
        assert touched.title == entry.title
        # Original is untouched
        assert entry.updated_at == created

    def test_touched_never_moves_backwards(self):
        future = utc_now() + timedelta(hours=1)
        entry = Entry(title="Notes", created_at=future, updated_at=future)
        touched = entry.touched(now=utc_now())
        assert touched.updated_at == future

    def test_retitled_keeps_identity(self):
        created = utc_now() - timedelta(minutes=5)
        entry = Entry(title="Draft", created_at=created, updated_at=created)
        renamed = entry.retitled("Final")
        assert renamed.title == "Final"
        assert renamed.id == entry.id
        assert renamed.created_at == created
        assert renamed.updated_at >= created

    def test_entry_is_immutable(self):
        entry = Entry(title="Notes")
        with pytest.raises(PydanticValidationError):
            entry.title = "Changed"


class TestHelpers:
    """Tests for ID and clock helpers."""

    def test_generate_id(self):
        first = generate_id()
        second = generate_id()
        assert isinstance(first, uuid.UUID)
        assert first != second

    def test_coerce_id_accepts_uuid_and_string(self):
        value = uuid.uuid4()
        assert coerce_id(value) is value
        assert coerce_id(str(value)) == value
        assert coerce_id(str(value).upper()) == value

    @pytest.mark.parametrize(
        "bad", ["", "not-a-uuid", "../../etc/passwd", 42, None, b"bytes"]
    )
    def test_coerce_id_rejects_invalid(self, bad):
        with pytest.raises(ValidationError) as exc_info:
            coerce_id(bad, "subject_id")
        assert exc_info.value.code == ErrorCode.INVALID_ID
        assert exc_info.value.field == "subject_id"

    def test_ensure_timezone_aware(self):
        aware = utc_now()
        assert ensure_timezone_aware(aware) == aware
        assert ensure_timezone_aware(aware).tzinfo == timezone.utc
        naive = datetime.datetime(2024, 1, 1)
        assert ensure_timezone_aware(naive).tzinfo == timezone.utc

"""Data models for the lecture store."""

import datetime
import uuid
from datetime import timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, field_validator

from lecture_store.exceptions import ErrorCode, ValidationError

# Anything the facade accepts where an ID is expected
IdLike = Union[uuid.UUID, str]


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: datetime.datetime) -> datetime.datetime:
    """Normalize a datetime to UTC, treating naive datetimes as UTC.

    Index files written by older tools may carry naive timestamps; those
    are assumed to be UTC. Aware values in other zones are converted.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same instant with UTC timezone info.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)


def generate_id() -> uuid.UUID:
    """Generate a random 128-bit identifier for a subject or entry."""
    return uuid.uuid4()


def coerce_id(value: Any, field_name: str = "id") -> uuid.UUID:
    """Turn a UUID or its canonical string form into a UUID.

    IDs end up as directory names under entries/, so anything that does not
    parse as a UUID is rejected before it can reach the filesystem.

    Args:
        value: The ID supplied by the caller
        field_name: Name of the field for error messages

    Returns:
        The parsed UUID

    Raises:
        ValidationError: If the value is not a valid UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError:
            pass
    raise ValidationError(
        f"{field_name} is not a valid UUID",
        field=field_name,
        value=value,
        code=ErrorCode.INVALID_ID,
    )


class Subject(BaseModel):
    """A named collection of entries, e.g. a course or topic."""

    id: uuid.UUID = Field(default_factory=generate_id, description="Subject identifier")
    name: str = Field(default="", description="Display name of the subject")
    description: str = Field(default="", description="Free-form description")

    model_config = {
        "extra": "ignore",
        "frozen": True,
    }


class Entry(BaseModel):
    """A titled note; its body lives in a separate CONTENT.md file."""

    id: uuid.UUID = Field(default_factory=generate_id, description="Entry identifier")
    title: str = Field(default="", description="Title of the entry")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the entry was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the entry was last modified (UTC)"
    )

    model_config = {
        "extra": "ignore",
        "frozen": True,
    }

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _timestamps_are_utc_aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    def touched(self, now: Optional[datetime.datetime] = None) -> "Entry":
        """Return a copy with updated_at refreshed.

        updated_at never moves backwards, even if the wall clock does.
        """
        now = ensure_timezone_aware(now) if now is not None else utc_now()
        return self.model_copy(
            update={"updated_at": max(now, self.updated_at, self.created_at)}
        )

    def retitled(self, title: str) -> "Entry":
        """Return a touched copy carrying a new title; id and created_at are kept."""
        return self.touched().model_copy(update={"title": title})


# Shapes of the two metadata documents
SubjectMap = Dict[uuid.UUID, Subject]
EntryMap = Dict[uuid.UUID, Dict[uuid.UUID, Entry]]

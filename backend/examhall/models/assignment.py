"""Assignment models: an exam handed to a class within a time window."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class AssignmentStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"


class AssignmentSettings(BaseModel):
    """Per-assignment toggles."""

    shuffle_questions: bool = True
    shuffle_answers: bool = True
    show_result_after_submit: bool = False


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Assignment(BaseModel):
    """An exam bound to a class with an access code and time window."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    exam_id: str
    class_id: str
    code: str = Field(min_length=1)
    status: AssignmentStatus = AssignmentStatus.DRAFT
    start_time: datetime
    end_time: datetime
    duration_minutes: int | None = Field(default=None, ge=1)  # overrides the exam's
    attempts: int = Field(default=1, ge=1)
    settings: AssignmentSettings = Field(default_factory=AssignmentSettings)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _normalise_window(self) -> "Assignment":
        self.start_time = as_utc(self.start_time)
        self.end_time = as_utc(self.end_time)
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def effective_status(self, now: datetime) -> AssignmentStatus:
        """Status after applying the automatic close at end of window."""
        if self.status == AssignmentStatus.OPEN and as_utc(now) > self.end_time:
            return AssignmentStatus.CLOSED
        return self.status

    def is_accepting(self, now: datetime) -> bool:
        """Whether a new attempt may begin at ``now``."""
        now = as_utc(now)
        return (
            self.effective_status(now) == AssignmentStatus.OPEN
            and self.start_time <= now <= self.end_time
        )


class AssignmentCreate(BaseModel):
    """Request for creating an assignment."""

    exam_id: str
    class_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int | None = Field(default=None, ge=1)
    attempts: int = Field(default=1, ge=1)
    settings: AssignmentSettings = Field(default_factory=AssignmentSettings)
    publish: bool = False

    @model_validator(mode="after")
    def _window(self) -> "AssignmentCreate":
        if as_utc(self.start_time) >= as_utc(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class EntryRequest(BaseModel):
    """A student entering an assignment by its access code."""

    code: str
    student_id: str


class EntryResult(BaseModel):
    assignment_id: str
    exam_id: str
    attempts_used: int
    attempts_allowed: int

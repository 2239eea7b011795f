"""Exam session and submission models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .question import QuestionPublic


class SessionPhase(str, Enum):
    """Lifecycle of one attempt."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    RESUME_PROMPT = "resume_prompt"
    ACTIVE = "active"
    VIOLATION_OVERLAY = "violation_overlay"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class IntegrityEventType(str, Enum):
    """Browser signals reported while an attempt is running."""

    VISIBILITY_HIDDEN = "visibility_hidden"
    VISIBILITY_VISIBLE = "visibility_visible"
    FOCUS_LOST = "focus_lost"
    FOCUS_GAINED = "focus_gained"

    @property
    def is_violation(self) -> bool:
        return self in (IntegrityEventType.VISIBILITY_HIDDEN, IntegrityEventType.FOCUS_LOST)


class SubmissionAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answer_id: str = ""  # empty when unanswered


class Submission(BaseModel):
    """The graded, immutable record of one completed attempt."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    assignment_id: str
    student_id: str
    variant_code: str
    start_time: datetime
    end_time: datetime
    answers: tuple[SubmissionAnswer, ...]
    correct_count: int
    total_questions: int
    score: float = Field(ge=0, le=10)
    passed: bool
    violation_count: int = 0
    flagged_for_review: bool = False
    auto_submitted: bool = False

    @property
    def elapsed_seconds(self) -> int:
        return int((self.end_time - self.start_time).total_seconds())


class SessionSnapshot(BaseModel):
    """What a student's screen shows for an attempt at a point in time."""

    assignment_id: str
    student_id: str
    phase: SessionPhase
    remaining_seconds: int = 0
    variant_code: str | None = None
    question_ids: list[str] = Field(default_factory=list)
    current_index: int = 0
    answers: dict[str, str] = Field(default_factory=dict)
    violation_count: int = 0
    pending_resume_answers: int = 0  # answers waiting for the resume decision
    last_saved_at: datetime | None = None
    autosave_degraded: bool = False
    submission_id: str | None = None
    redirected: bool = False
    notice: str | None = None


class SessionView(BaseModel):
    """Snapshot plus the rendered questions of the pinned variant."""

    snapshot: SessionSnapshot
    questions: list[QuestionPublic] = Field(default_factory=list)


class AnswerUpdate(BaseModel):
    question_id: str
    answer_id: str


class NavigateRequest(BaseModel):
    index: int


class IntegrityReport(BaseModel):
    event: IntegrityEventType


class SubmissionResult(BaseModel):
    """Result view shown to the student after an attempt."""

    submission_id: str
    assignment_id: str
    start_time: datetime
    end_time: datetime
    total_questions: int
    auto_submitted: bool
    result_visible: bool
    score: float | None = None
    passed: bool | None = None
    correct_count: int | None = None

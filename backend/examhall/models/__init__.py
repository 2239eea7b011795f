"""Pydantic models for the Examhall application."""

from .question import (
    AnswerOption,
    AnswerOptionPublic,
    LevelAvailability,
    Question,
    QuestionCreate,
    QuestionLevel,
    QuestionPublic,
    QuestionStats,
    QuestionType,
)
from .exam import Exam, ExamCreate, ExamStructure, ExamSummary, ExamVariant, SelectionMatrix
from .assignment import (
    Assignment,
    AssignmentCreate,
    AssignmentSettings,
    AssignmentStatus,
    EntryRequest,
    EntryResult,
)
from .session import (
    IntegrityEventType,
    SessionPhase,
    SessionSnapshot,
    SessionView,
    Submission,
    SubmissionAnswer,
    SubmissionResult,
)

__all__ = [
    "AnswerOption",
    "AnswerOptionPublic",
    "LevelAvailability",
    "Question",
    "QuestionCreate",
    "QuestionLevel",
    "QuestionPublic",
    "QuestionStats",
    "QuestionType",
    "Exam",
    "ExamCreate",
    "ExamStructure",
    "ExamSummary",
    "ExamVariant",
    "SelectionMatrix",
    "Assignment",
    "AssignmentCreate",
    "AssignmentSettings",
    "AssignmentStatus",
    "EntryRequest",
    "EntryResult",
    "IntegrityEventType",
    "SessionPhase",
    "SessionSnapshot",
    "SessionView",
    "Submission",
    "SubmissionAnswer",
    "SubmissionResult",
]

"""Business logic services."""

from .question_bank import QuestionBankService
from .blueprint import ExamBlueprintGenerator
from .exams import ExamService
from .assignments import AssignmentService
from .submissions import SubmissionService
from .session_engine import ExamSessionEngine
from .sessions import ExamSessionService, SqlAttemptRepository

__all__ = [
    "QuestionBankService",
    "ExamBlueprintGenerator",
    "ExamService",
    "AssignmentService",
    "SubmissionService",
    "ExamSessionEngine",
    "ExamSessionService",
    "SqlAttemptRepository",
]

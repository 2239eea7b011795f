"""Database layer for the Examhall application."""

from .database import get_db, init_db, async_session
from .models import Base, QuestionDB, ExamDB, AssignmentDB, SubmissionDB

__all__ = [
    "get_db",
    "init_db",
    "async_session",
    "Base",
    "QuestionDB",
    "ExamDB",
    "AssignmentDB",
    "SubmissionDB",
]

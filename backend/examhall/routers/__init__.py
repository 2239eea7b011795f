"""API routers for the Examhall application."""

from .questions import router as questions_router
from .exams import router as exams_router
from .assignments import router as assignments_router
from .sessions import router as sessions_router
from .submissions import router as submissions_router

__all__ = [
    "questions_router",
    "exams_router",
    "assignments_router",
    "sessions_router",
    "submissions_router",
]

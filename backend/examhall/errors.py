"""Exception hierarchy for exam authoring and exam sessions."""

from dataclasses import dataclass


class ExamhallError(Exception):
    """Base class for all application errors."""


@dataclass(frozen=True)
class LevelShortfall:
    """Requested versus available questions for one cognitive level."""

    requested: int
    available: int

    @property
    def missing(self) -> int:
        return self.requested - self.available


class InsufficientPoolError(ExamhallError, ValueError):
    """The question pool cannot satisfy a selection matrix."""

    def __init__(self, shortfalls: dict):
        self.shortfalls = shortfalls
        parts = [
            f"{level.value}: requested {s.requested}, available {s.available}"
            for level, s in shortfalls.items()
        ]
        super().__init__("Not enough questions for " + "; ".join(parts))


class NotFoundError(ExamhallError, LookupError):
    """A required record does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class AssignmentUnavailableError(ExamhallError):
    """The assignment cannot be entered right now (draft, closed, out of window)."""


class AttemptsExhaustedError(ExamhallError):
    """The student has used every allowed attempt."""

    def __init__(self, attempts: int, submission_id: str | None = None):
        self.attempts = attempts
        self.submission_id = submission_id
        super().__init__(f"All {attempts} allowed attempt(s) have been used")


class InvalidTransitionError(ExamhallError):
    """An operation is not allowed in the current state."""


class InvalidAnswerError(ExamhallError, ValueError):
    """An answer refers to a question outside the pinned variant."""


class PersistenceError(ExamhallError):
    """Session state could not be written."""


class SubmissionFailedError(ExamhallError):
    """The final submission could not be stored. The attempt can be retried."""

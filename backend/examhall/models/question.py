"""Question-related Pydantic models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class QuestionLevel(str, Enum):
    """Cognitive levels used by the selection matrix."""

    RECOGNITION = "recognition"
    UNDERSTANDING = "understanding"
    APPLICATION = "application"
    HIGH_APPLICATION = "high_application"


class QuestionType(str, Enum):
    """How the question is presented to the student."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


class AnswerOption(BaseModel):
    """One selectable answer of a question."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    is_correct: bool = False


class AnswerOptionPublic(BaseModel):
    """An answer option as shown to a student (no correctness flag)."""

    id: str
    content: str


class QuestionStats(BaseModel):
    """How often a question appeared in submissions and was answered correctly."""

    used: int = 0
    correct: int = 0


def _check_single_correct(options: list[AnswerOption]) -> None:
    correct = [o for o in options if o.is_correct]
    if len(correct) != 1:
        raise ValueError("A question needs exactly one correct answer option")
    ids = [o.id for o in options]
    if len(set(ids)) != len(ids):
        raise ValueError("Answer option ids must be unique within a question")


class Question(BaseModel):
    """A complete question with all metadata."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    level: QuestionLevel
    lesson_id: str
    image: str | None = None
    options: list[AnswerOption] = Field(min_length=2)
    stats: QuestionStats = Field(default_factory=QuestionStats)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _single_correct(self) -> "Question":
        _check_single_correct(self.options)
        return self

    @property
    def correct_option_id(self) -> str:
        return next(o.id for o in self.options if o.is_correct)

    class Config:
        json_schema_extra = {
            "example": {
                "content": "Which number is prime?",
                "type": "multiple_choice",
                "level": "recognition",
                "lesson_id": "math-6-primes",
                "options": [
                    {"id": "a", "content": "4"},
                    {"id": "b", "content": "7", "is_correct": True},
                    {"id": "c", "content": "9"},
                    {"id": "d", "content": "15"},
                ],
            }
        }


class QuestionCreate(BaseModel):
    """Model for creating a new question."""

    content: str = Field(min_length=1)
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    level: QuestionLevel
    lesson_id: str = Field(min_length=1)
    image: str | None = None
    options: list[AnswerOption] = Field(min_length=2)

    @model_validator(mode="after")
    def _single_correct(self) -> "QuestionCreate":
        _check_single_correct(self.options)
        return self


class QuestionPublic(BaseModel):
    """A question as rendered during an attempt."""

    id: str
    content: str
    type: QuestionType
    image: str | None = None
    options: list[AnswerOptionPublic]


class LevelAvailability(BaseModel):
    """Available question counts per level for a set of lessons."""

    lesson_ids: list[str]
    counts: dict[QuestionLevel, int]

"""Exam blueprint models.

An exam is composed from a selection matrix: a number of questions per
cognitive level drawn from a set of eligible lessons. The drawn questions are
fixed once and every variant is a different ordering of that same set, so all
students sit identical content at identical difficulty.
"""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .question import QuestionLevel


class SelectionMatrix(BaseModel):
    """Requested question counts per level, eligible lessons and variant count."""

    level_counts: dict[QuestionLevel, int]
    lesson_ids: list[str] = Field(min_length=1)
    variant_count: int = Field(default=1, ge=1)

    @field_validator("level_counts")
    @classmethod
    def _all_levels(cls, value: dict[QuestionLevel, int]) -> dict[QuestionLevel, int]:
        counts = {level: value.get(level, 0) for level in QuestionLevel}
        if any(c < 0 for c in counts.values()):
            raise ValueError("Level counts cannot be negative")
        if sum(counts.values()) == 0:
            raise ValueError("An exam needs at least one question")
        return counts

    @property
    def total_questions(self) -> int:
        return sum(self.level_counts.values())


class ExamVariant(BaseModel):
    """One presentation order of the exam's questions."""

    model_config = ConfigDict(frozen=True)

    code: str  # e.g. "101", "102"
    question_ids: tuple[str, ...]


class ExamStructure(BaseModel):
    """The matrix an exam was generated from."""

    model_config = ConfigDict(frozen=True)

    lesson_ids: tuple[str, ...]
    level_counts: dict[QuestionLevel, int]
    total_questions: int


class Exam(BaseModel):
    """An immutable, generated exam."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    duration_minutes: int = Field(ge=1)
    structure: ExamStructure
    variants: tuple[ExamVariant, ...]
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def total_questions(self) -> int:
        return self.structure.total_questions

    def get_variant(self, code: str) -> ExamVariant | None:
        return next((v for v in self.variants if v.code == code), None)


class ExamCreate(BaseModel):
    """Request for generating a new exam."""

    title: str = Field(min_length=1)
    duration_minutes: int = Field(ge=1, le=600)
    matrix: SelectionMatrix


class ExamSummary(BaseModel):
    """Exam listing entry."""

    id: str
    title: str
    duration_minutes: int
    total_questions: int
    variant_codes: list[str]
    created_at: datetime

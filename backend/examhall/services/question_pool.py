"""Read-only views over the question catalog used for exam generation."""

from collections.abc import Iterable
from typing import Protocol

from examhall.models.question import Question, QuestionLevel


class QuestionPool(Protocol):
    """Level-filtered query capability over a question catalog."""

    def count_available(self, lesson_ids: Iterable[str], level: QuestionLevel) -> int:
        ...

    def list_available(self, lesson_ids: Iterable[str], level: QuestionLevel) -> list[str]:
        ...


class InMemoryQuestionPool:
    """QuestionPool over an already loaded list of questions.

    Questions keep their catalog order so that, given the same random source,
    generation is reproducible.
    """

    def __init__(self, questions: Iterable[Question]):
        self._questions = list(questions)

    def __len__(self) -> int:
        return len(self._questions)

    def _matching(self, lesson_ids: Iterable[str], level: QuestionLevel) -> list[Question]:
        lessons = set(lesson_ids)
        return [q for q in self._questions if q.lesson_id in lessons and q.level == level]

    def count_available(self, lesson_ids: Iterable[str], level: QuestionLevel) -> int:
        return len(self._matching(lesson_ids, level))

    def list_available(self, lesson_ids: Iterable[str], level: QuestionLevel) -> list[str]:
        return [q.id for q in self._matching(lesson_ids, level)]

    def availability(self, lesson_ids: Iterable[str]) -> dict[QuestionLevel, int]:
        lessons = list(lesson_ids)
        return {level: self.count_available(lessons, level) for level in QuestionLevel}

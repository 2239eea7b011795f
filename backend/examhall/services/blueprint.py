"""Stratified exam generation from a selection matrix."""

import logging
import random

from examhall.config import settings
from examhall.errors import InsufficientPoolError, LevelShortfall
from examhall.models.exam import Exam, ExamStructure, ExamVariant, SelectionMatrix
from examhall.models.question import QuestionLevel

from .question_pool import QuestionPool

logger = logging.getLogger(__name__)


def check_matrix(matrix: SelectionMatrix, pool: QuestionPool) -> dict[QuestionLevel, LevelShortfall]:
    """Return the levels the pool cannot satisfy; empty when the matrix is feasible."""
    shortfalls = {}
    for level in QuestionLevel:
        requested = matrix.level_counts.get(level, 0)
        if requested == 0:
            continue
        available = pool.count_available(matrix.lesson_ids, level)
        if requested > available:
            shortfalls[level] = LevelShortfall(requested=requested, available=available)
    return shortfalls


class ExamBlueprintGenerator:
    """Draws one fixed question set per exam and shuffles it into variants."""

    def __init__(self, rng: random.Random | None = None, code_base: int | None = None):
        self.rng = rng or random.Random()
        self.code_base = settings.variant_code_base if code_base is None else code_base

    def _shuffled(self, items: list[str]) -> list[str]:
        shuffled = list(items)
        self.rng.shuffle(shuffled)
        return shuffled

    def draw_base_set(self, matrix: SelectionMatrix, pool: QuestionPool) -> list[str]:
        """Sample the requested number of questions per level without replacement."""
        base: list[str] = []
        for level in QuestionLevel:
            count = matrix.level_counts.get(level, 0)
            if count == 0:
                continue
            eligible = pool.list_available(matrix.lesson_ids, level)
            base.extend(self._shuffled(eligible)[:count])
        return base

    def generate(
        self,
        matrix: SelectionMatrix,
        pool: QuestionPool,
        title: str = "Untitled exam",
        duration_minutes: int = 45,
    ) -> Exam:
        """Build an exam whose variants are permutations of the same question set.

        Raises InsufficientPoolError before drawing anything if any level of
        the matrix asks for more questions than the eligible lessons hold.
        """
        shortfalls = check_matrix(matrix, pool)
        if shortfalls:
            raise InsufficientPoolError(shortfalls)

        base = self.draw_base_set(matrix, pool)
        variants = tuple(
            ExamVariant(code=str(self.code_base + i), question_ids=tuple(self._shuffled(base)))
            for i in range(matrix.variant_count)
        )

        exam = Exam(
            title=title,
            duration_minutes=duration_minutes,
            structure=ExamStructure(
                lesson_ids=tuple(matrix.lesson_ids),
                level_counts=dict(matrix.level_counts),
                total_questions=matrix.total_questions,
            ),
            variants=variants,
        )
        logger.info(
            f"Generated exam {exam.id} '{title}': {len(base)} questions, "
            f"{len(variants)} variant(s)"
        )
        return exam

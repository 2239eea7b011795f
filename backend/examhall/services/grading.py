"""Deterministic grading of a finished attempt."""

from dataclasses import dataclass

from examhall.config import settings
from examhall.models.session import SubmissionAnswer


@dataclass(frozen=True)
class GradeResult:
    answers: tuple[SubmissionAnswer, ...]
    correct_by_question: dict[str, bool]
    correct_count: int
    total_questions: int
    score: float
    passed: bool


def compute_score(correct: int, total: int, max_score: float | None = None) -> float:
    """Score on a 0-10 scale rounded to two decimals; zero for an empty exam."""
    if total <= 0:
        return 0.0
    scale = settings.max_score if max_score is None else max_score
    return round(correct / total * scale, 2)


def grade(
    question_ids: list[str] | tuple[str, ...],
    answer_key: dict[str, str],
    answers: dict[str, str],
    pass_threshold: float | None = None,
) -> GradeResult:
    """Compare each chosen option against the correct one, in variant order.

    Unanswered questions are recorded with an empty answer and count as wrong.
    """
    threshold = settings.pass_threshold if pass_threshold is None else pass_threshold
    recorded = []
    correct_by_question = {}
    for qid in question_ids:
        chosen = answers.get(qid, "")
        recorded.append(SubmissionAnswer(question_id=qid, answer_id=chosen))
        expected = answer_key.get(qid)
        correct_by_question[qid] = bool(chosen) and expected is not None and chosen == expected

    correct = sum(correct_by_question.values())
    total = len(question_ids)
    score = compute_score(correct, total)
    return GradeResult(
        answers=tuple(recorded),
        correct_by_question=correct_by_question,
        correct_count=correct,
        total_questions=total,
        score=score,
        passed=score >= threshold,
    )

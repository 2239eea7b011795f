"""Submission storage and the student result view."""

import json
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db.models import SubmissionDB
from examhall.models.assignment import Assignment, as_utc
from examhall.models.session import Submission, SubmissionAnswer, SubmissionResult

from .grading import grade
from .question_bank import QuestionBankService

logger = logging.getLogger(__name__)


class SubmissionService:
    """Append-only access to graded attempts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.question_bank = QuestionBankService(db)

    async def create(self, submission: Submission) -> None:
        """Insert the submission and bump question usage stats in one flush."""
        self.db.add(SubmissionDB(
            id=submission.id,
            assignment_id=submission.assignment_id,
            student_id=submission.student_id,
            variant_code=submission.variant_code,
            start_time=submission.start_time,
            end_time=submission.end_time,
            answers=json.dumps([a.model_dump() for a in submission.answers]),
            correct_count=submission.correct_count,
            total_questions=submission.total_questions,
            score=submission.score,
            passed=submission.passed,
            violation_count=submission.violation_count,
            flagged_for_review=submission.flagged_for_review,
            auto_submitted=submission.auto_submitted,
        ))

        question_ids = [a.question_id for a in submission.answers]
        answer_key = await self.question_bank.answer_key(question_ids)
        chosen = {a.question_id: a.answer_id for a in submission.answers}
        await self.question_bank.record_usage(grade(question_ids, answer_key, chosen).correct_by_question)
        await self.db.flush()

    async def get(self, submission_id: str) -> Submission | None:
        result = await self.db.execute(select(SubmissionDB).where(SubmissionDB.id == submission_id))
        db_submission = result.scalar_one_or_none()
        if not db_submission:
            return None
        return self._db_to_model(db_submission)

    async def list_for_student(self, assignment_id: str, student_id: str) -> list[Submission]:
        """Submissions of one student for one assignment, oldest first."""
        result = await self.db.execute(
            select(SubmissionDB)
            .where(SubmissionDB.assignment_id == assignment_id)
            .where(SubmissionDB.student_id == student_id)
            .order_by(SubmissionDB.start_time)
        )
        return [self._db_to_model(s) for s in result.scalars().all()]

    @staticmethod
    def to_result(submission: Submission, assignment: Assignment | None) -> SubmissionResult:
        """Result view; score fields are hidden unless the assignment shows results."""
        visible = bool(assignment and assignment.settings.show_result_after_submit)
        return SubmissionResult(
            submission_id=submission.id,
            assignment_id=submission.assignment_id,
            start_time=submission.start_time,
            end_time=submission.end_time,
            total_questions=submission.total_questions,
            auto_submitted=submission.auto_submitted,
            result_visible=visible,
            score=submission.score if visible else None,
            passed=submission.passed if visible else None,
            correct_count=submission.correct_count if visible else None,
        )

    @staticmethod
    def _db_to_model(db_submission: SubmissionDB) -> Submission:
        return Submission(
            id=db_submission.id,
            assignment_id=db_submission.assignment_id,
            student_id=db_submission.student_id,
            variant_code=db_submission.variant_code,
            start_time=as_utc(db_submission.start_time),
            end_time=as_utc(db_submission.end_time),
            answers=tuple(SubmissionAnswer(**a) for a in json.loads(db_submission.answers)),
            correct_count=db_submission.correct_count,
            total_questions=db_submission.total_questions,
            score=db_submission.score,
            passed=db_submission.passed,
            violation_count=db_submission.violation_count,
            flagged_for_review=db_submission.flagged_for_review,
            auto_submitted=db_submission.auto_submitted,
        )

"""Exam service: generation and storage of exams."""

import json
import logging
import random

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.config import settings
from examhall.db.models import ExamDB
from examhall.models.exam import Exam, ExamCreate, ExamStructure, ExamSummary, ExamVariant
from examhall.models.question import Question

from .blueprint import ExamBlueprintGenerator
from .question_bank import QuestionBankService

logger = logging.getLogger(__name__)


class ExamService:
    """Service for creating and reading exams."""

    def __init__(self, db: AsyncSession, rng: random.Random | None = None):
        self.db = db
        self.question_bank = QuestionBankService(db)
        self.generator = ExamBlueprintGenerator(rng=rng)

    async def create_exam(self, request: ExamCreate) -> Exam:
        """Generate an exam from the current question bank and store it."""
        if request.matrix.variant_count > settings.max_variants:
            raise ValueError(f"At most {settings.max_variants} variants are allowed")

        pool = await self.question_bank.load_pool(request.matrix.lesson_ids)
        exam = self.generator.generate(
            request.matrix,
            pool,
            title=request.title,
            duration_minutes=request.duration_minutes,
        )

        self.db.add(ExamDB(
            id=exam.id,
            title=exam.title,
            duration_minutes=exam.duration_minutes,
            structure=exam.structure.model_dump_json(),
            variants=json.dumps([v.model_dump(mode="json") for v in exam.variants]),
            created_at=exam.created_at,
        ))
        await self.db.flush()
        return exam

    async def get_exam(self, exam_id: str) -> Exam | None:
        result = await self.db.execute(select(ExamDB).where(ExamDB.id == exam_id))
        db_exam = result.scalar_one_or_none()
        if not db_exam:
            return None
        return self._db_to_model(db_exam)

    async def list_exams(self) -> list[ExamSummary]:
        result = await self.db.execute(select(ExamDB).order_by(ExamDB.created_at.desc()))
        summaries = []
        for db_exam in result.scalars().all():
            exam = self._db_to_model(db_exam)
            summaries.append(ExamSummary(
                id=exam.id,
                title=exam.title,
                duration_minutes=exam.duration_minutes,
                total_questions=exam.total_questions,
                variant_codes=[v.code for v in exam.variants],
                created_at=exam.created_at,
            ))
        return summaries

    async def get_variant_questions(self, exam_id: str, code: str) -> list[Question] | None:
        """Questions of one variant in presentation order (preview for authors)."""
        exam = await self.get_exam(exam_id)
        if not exam:
            return None
        variant = exam.get_variant(code)
        if not variant:
            return None
        questions = await self.question_bank.get_questions_by_ids(list(variant.question_ids))
        return [questions[qid] for qid in variant.question_ids if qid in questions]

    @staticmethod
    def _db_to_model(db_exam: ExamDB) -> Exam:
        return Exam(
            id=db_exam.id,
            title=db_exam.title,
            duration_minutes=db_exam.duration_minutes,
            structure=ExamStructure.model_validate_json(db_exam.structure),
            variants=tuple(ExamVariant(**v) for v in json.loads(db_exam.variants)),
            created_at=db_exam.created_at,
        )

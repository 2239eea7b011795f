"""Question bank service for managing and retrieving questions."""

import json
import logging
import random
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.db.models import QuestionDB
from examhall.models.question import (
    AnswerOption,
    AnswerOptionPublic,
    Question,
    QuestionCreate,
    QuestionLevel,
    QuestionPublic,
    QuestionStats,
    QuestionType,
)

from .question_pool import InMemoryQuestionPool

logger = logging.getLogger(__name__)


class QuestionBankService:
    """Service for managing the question bank."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_question(self, question_id: str) -> Question | None:
        """Get a single question by ID."""
        result = await self.db.execute(select(QuestionDB).where(QuestionDB.id == question_id))
        db_question = result.scalar_one_or_none()
        if not db_question:
            return None
        return self._db_to_model(db_question)

    async def get_questions_by_ids(self, question_ids: list[str]) -> dict[str, Question]:
        """Fetch several questions at once, keyed by ID."""
        if not question_ids:
            return {}
        result = await self.db.execute(select(QuestionDB).where(QuestionDB.id.in_(question_ids)))
        return {q.id: self._db_to_model(q) for q in result.scalars().all()}

    async def list_questions(
        self,
        lesson_id: str | None = None,
        level: QuestionLevel | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Question]:
        """List questions with optional filtering."""
        query = select(QuestionDB).order_by(QuestionDB.created_at, QuestionDB.id)
        if lesson_id:
            query = query.where(QuestionDB.lesson_id == lesson_id)
        if level:
            query = query.where(QuestionDB.level == level.value)
        result = await self.db.execute(query.offset(offset).limit(limit))
        return [self._db_to_model(q) for q in result.scalars().all()]

    async def create_question(self, question: QuestionCreate) -> Question:
        """Create a new question."""
        db_question = QuestionDB(
            content=question.content,
            type=question.type.value,
            level=question.level.value,
            lesson_id=question.lesson_id,
            image=question.image,
            options=json.dumps([o.model_dump() for o in question.options]),
        )
        self.db.add(db_question)
        await self.db.flush()
        return self._db_to_model(db_question)

    async def count_by_level(self, lesson_ids: list[str]) -> dict[QuestionLevel, int]:
        """Available question counts per level for the given lessons."""
        counts = {level: 0 for level in QuestionLevel}
        if not lesson_ids:
            return counts
        result = await self.db.execute(
            select(QuestionDB.level, func.count())
            .where(QuestionDB.lesson_id.in_(lesson_ids))
            .group_by(QuestionDB.level)
        )
        for level, count in result:
            counts[QuestionLevel(level)] = count
        return counts

    async def load_pool(self, lesson_ids: list[str]) -> InMemoryQuestionPool:
        """Snapshot the eligible part of the catalog for exam generation."""
        result = await self.db.execute(
            select(QuestionDB)
            .where(QuestionDB.lesson_id.in_(lesson_ids))
            .order_by(QuestionDB.created_at, QuestionDB.id)
        )
        return InMemoryQuestionPool(self._db_to_model(q) for q in result.scalars().all())

    async def answer_key(self, question_ids: list[str]) -> dict[str, str]:
        """Map question ID to its correct option ID."""
        questions = await self.get_questions_by_ids(question_ids)
        return {qid: q.correct_option_id for qid, q in questions.items()}

    async def record_usage(self, correct_by_question: dict[str, bool]) -> None:
        """Bump usage statistics after a submission."""
        if not correct_by_question:
            return
        result = await self.db.execute(
            select(QuestionDB).where(QuestionDB.id.in_(list(correct_by_question)))
        )
        for db_question in result.scalars().all():
            db_question.times_used += 1
            if correct_by_question[db_question.id]:
                db_question.times_correct += 1
        await self.db.flush()

    async def load_questions_from_json(self, filepath: Path) -> int:
        """Load questions from a JSON file."""
        with open(filepath) as f:
            data = json.load(f)

        # Handle both {"questions": [...]} format and plain [...] format
        if isinstance(data, list):
            questions = data
        else:
            questions = data.get("questions", [])

        count = 0
        for q_data in questions:
            try:
                question = QuestionCreate(**q_data)
            except ValidationError as e:
                logger.warning(f"Skipping invalid question in {filepath.name}: {e}")
                continue
            await self.create_question(question)
            count += 1

        return count

    @staticmethod
    def to_public(question: Question, shuffle_seed: str | None = None) -> QuestionPublic:
        """Strip correctness flags, optionally shuffling options with a stable seed."""
        options = [AnswerOptionPublic(id=o.id, content=o.content) for o in question.options]
        if shuffle_seed is not None:
            random.Random(f"{shuffle_seed}:{question.id}").shuffle(options)
        return QuestionPublic(
            id=question.id,
            content=question.content,
            type=question.type,
            image=question.image,
            options=options,
        )

    def _db_to_model(self, db_question: QuestionDB) -> Question:
        """Convert database model to Pydantic model."""
        return Question(
            id=db_question.id,
            content=db_question.content,
            type=QuestionType(db_question.type),
            level=QuestionLevel(db_question.level),
            lesson_id=db_question.lesson_id,
            image=db_question.image,
            options=[AnswerOption(**o) for o in db_question.get_options()],
            stats=QuestionStats(used=db_question.times_used or 0, correct=db_question.times_correct or 0),
            created_at=db_question.created_at,
        )

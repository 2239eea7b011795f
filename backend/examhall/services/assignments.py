"""Assignment lifecycle: access codes, publishing, closing and entry checks."""

import json
import logging
import random
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examhall.config import settings
from examhall.db.models import AssignmentDB, ExamDB
from examhall.errors import (
    AssignmentUnavailableError,
    AttemptsExhaustedError,
    InvalidTransitionError,
    NotFoundError,
)
from examhall.models.assignment import (
    Assignment,
    AssignmentCreate,
    AssignmentSettings,
    AssignmentStatus,
    EntryResult,
    as_utc,
)

from .submissions import SubmissionService

logger = logging.getLogger(__name__)


def generate_access_code(rng: random.Random, existing: set[str]) -> str:
    """Random uppercase alphanumeric code not present in ``existing``."""
    code = ""
    while not code or code in existing:
        code = "".join(
            rng.choice(settings.access_code_alphabet) for _ in range(settings.access_code_length)
        )
    return code


class AssignmentService:
    """Service for assigning exams to classes."""

    def __init__(self, db: AsyncSession, rng: random.Random | None = None, clock=None):
        self.db = db
        self.rng = rng or random.SystemRandom()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_assignment(self, request: AssignmentCreate) -> Assignment:
        exam = await self.db.execute(select(ExamDB.id).where(ExamDB.id == request.exam_id))
        if exam.scalar_one_or_none() is None:
            raise NotFoundError("Exam", request.exam_id)

        codes = await self.db.execute(select(AssignmentDB.code))
        code = generate_access_code(self.rng, set(codes.scalars().all()))

        assignment = Assignment(
            exam_id=request.exam_id,
            class_id=request.class_id,
            code=code,
            status=AssignmentStatus.OPEN if request.publish else AssignmentStatus.DRAFT,
            start_time=request.start_time,
            end_time=request.end_time,
            duration_minutes=request.duration_minutes,
            attempts=request.attempts,
            settings=request.settings,
        )
        self.db.add(AssignmentDB(
            id=assignment.id,
            exam_id=assignment.exam_id,
            class_id=assignment.class_id,
            code=assignment.code,
            status=assignment.status.value,
            start_time=assignment.start_time,
            end_time=assignment.end_time,
            duration_minutes=assignment.duration_minutes,
            attempts=assignment.attempts,
            settings=assignment.settings.model_dump_json(),
            created_at=assignment.created_at,
        ))
        await self.db.flush()
        logger.info(
            f"Assignment {assignment.id} ({assignment.code}) created as {assignment.status.value}"
        )
        return assignment

    async def _get_db(self, assignment_id: str) -> AssignmentDB:
        result = await self.db.execute(select(AssignmentDB).where(AssignmentDB.id == assignment_id))
        db_assignment = result.scalar_one_or_none()
        if not db_assignment:
            raise NotFoundError("Assignment", assignment_id)
        return db_assignment

    async def get_assignment(self, assignment_id: str) -> Assignment | None:
        """Get an assignment, closing it first if its window has ended."""
        result = await self.db.execute(select(AssignmentDB).where(AssignmentDB.id == assignment_id))
        db_assignment = result.scalar_one_or_none()
        if not db_assignment:
            return None
        return await self._refresh(db_assignment)

    async def get_by_code(self, code: str) -> Assignment | None:
        normalised = code.strip().upper()
        result = await self.db.execute(select(AssignmentDB).where(AssignmentDB.code == normalised))
        db_assignment = result.scalar_one_or_none()
        if not db_assignment:
            return None
        return await self._refresh(db_assignment)

    async def publish(self, assignment_id: str) -> Assignment:
        db_assignment = await self._get_db(assignment_id)
        if db_assignment.status != AssignmentStatus.DRAFT.value:
            raise InvalidTransitionError("Only draft assignments can be published")
        db_assignment.status = AssignmentStatus.OPEN.value
        await self.db.flush()
        logger.info(f"Assignment {assignment_id} published")
        return self._db_to_model(db_assignment)

    async def close(self, assignment_id: str) -> Assignment:
        db_assignment = await self._get_db(assignment_id)
        if db_assignment.status != AssignmentStatus.OPEN.value:
            raise InvalidTransitionError("Only open assignments can be closed")
        db_assignment.status = AssignmentStatus.CLOSED.value
        await self.db.flush()
        logger.info(f"Assignment {assignment_id} closed")
        return self._db_to_model(db_assignment)

    async def close_expired(self) -> int:
        """Close every open assignment whose window has ended."""
        now = self.clock()
        result = await self.db.execute(
            select(AssignmentDB).where(AssignmentDB.status == AssignmentStatus.OPEN.value)
        )
        closed = 0
        for db_assignment in result.scalars().all():
            if as_utc(db_assignment.end_time) < as_utc(now):
                db_assignment.status = AssignmentStatus.CLOSED.value
                closed += 1
        if closed:
            await self.db.flush()
            logger.info(f"Closed {closed} expired assignment(s)")
        return closed

    async def check_entry(self, code: str, student_id: str) -> EntryResult:
        """Validate that a student may begin an attempt using an access code."""
        assignment = await self.get_by_code(code)
        if not assignment:
            raise AssignmentUnavailableError("Invalid exam code")
        if assignment.status == AssignmentStatus.DRAFT:
            raise AssignmentUnavailableError("This exam has not been published yet")
        if assignment.status == AssignmentStatus.CLOSED:
            raise AssignmentUnavailableError("This exam is closed")

        now = as_utc(self.clock())
        if now < assignment.start_time:
            raise AssignmentUnavailableError(
                f"This exam opens at {assignment.start_time.isoformat()}"
            )
        if now > assignment.end_time:
            raise AssignmentUnavailableError("This exam has ended")

        submissions = await SubmissionService(self.db).list_for_student(assignment.id, student_id)
        if len(submissions) >= assignment.attempts:
            raise AttemptsExhaustedError(assignment.attempts, submissions[0].id)

        return EntryResult(
            assignment_id=assignment.id,
            exam_id=assignment.exam_id,
            attempts_used=len(submissions),
            attempts_allowed=assignment.attempts,
        )

    async def _refresh(self, db_assignment: AssignmentDB) -> Assignment:
        assignment = self._db_to_model(db_assignment)
        effective = assignment.effective_status(self.clock())
        if effective != assignment.status:
            db_assignment.status = effective.value
            await self.db.flush()
            assignment.status = effective
            logger.info(f"Assignment {assignment.id} closed automatically at end of window")
        return assignment

    @staticmethod
    def _db_to_model(db_assignment: AssignmentDB) -> Assignment:
        return Assignment(
            id=db_assignment.id,
            exam_id=db_assignment.exam_id,
            class_id=db_assignment.class_id,
            code=db_assignment.code,
            status=AssignmentStatus(db_assignment.status),
            start_time=as_utc(db_assignment.start_time),
            end_time=as_utc(db_assignment.end_time),
            duration_minutes=db_assignment.duration_minutes,
            attempts=db_assignment.attempts,
            settings=AssignmentSettings(**json.loads(db_assignment.settings or "{}")),
            created_at=db_assignment.created_at,
        )
